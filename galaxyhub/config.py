"""
galaxyhub.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the soft, non-secret settings of a deployment.
Secrets (``DATABASE_URL``) come from the environment / ``.env`` instead.

Usage::

    from galaxyhub.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.universe_name)     # "Uni 4"
    print(cfg.sqlite_busy_timeout) # 30.0
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from galaxyhub.constants import SQLITE_BUSY_TIMEOUT


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class HubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    universe_name: str

    # Storage
    sqlite_busy_timeout: float = SQLITE_BUSY_TIMEOUT

    # Logging
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> HubConfig:
    """Read *path* and return a :class:`HubConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return HubConfig(
        universe_name=raw["universe_name"],
        sqlite_busy_timeout=float(raw.get("sqlite_busy_timeout", SQLITE_BUSY_TIMEOUT)),
        log_level=str(raw.get("log_level", "INFO")).upper(),
    )
