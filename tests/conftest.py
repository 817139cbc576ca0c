"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from galaxyhub.database.engine import configure_sqlite
from galaxyhub.database.models import Alliance, Base, Player


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all galaxyhub tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).  Foreign keys
    are enforced like on PostgreSQL.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return engine


def seed_alliance(engine: Engine, alliance_id: int = 7, name: str = "Night Watch",
                  tag: str = "NW") -> int:
    with Session(engine) as session:
        session.add(Alliance(id=alliance_id, name=name, tag=tag))
        session.commit()
    return alliance_id


def seed_player(engine: Engine, player_id: int = 1001, name: str = "Vega",
                alliance_id: int | None = None, **fields) -> int:
    with Session(engine) as session:
        session.add(Player(id=player_id, name=name, alliance_id=alliance_id, **fields))
        session.commit()
    return player_id
