"""
galaxyhub.__main__ — Entry point for ``python -m galaxyhub``
============================================================

Wiring:
1. Load .env (DATABASE_URL).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Report readiness and the current scan coverage.

The hub has no transport of its own; collaborators import the service
modules and pass the engine built here.  Run with::

    python -m galaxyhub
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from galaxyhub.config import load_config
from galaxyhub.database.engine import create_db_engine, init_db
from galaxyhub.services.hub_service import get_galaxy_scan_status

logger = logging.getLogger("galaxyhub")


def main() -> None:
    """Bootstrap the store and check it is reachable."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError) as exc:
        logging.basicConfig(level=logging.INFO)
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    logger.info("Config loaded — Universe: %s", cfg.universe_name)

    # 3. Database.
    try:
        engine = create_db_engine(sqlite_busy_timeout=cfg.sqlite_busy_timeout)
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)

    # 4. Readiness.
    systems = get_galaxy_scan_status(engine)
    logger.info("galaxyhub ready: %d systems scanned so far", len(systems))
    engine.dispose()


if __name__ == "__main__":
    main()
