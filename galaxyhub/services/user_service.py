"""
galaxyhub.services.user_service — API-Key Identity Lookup
==========================================================

Users are not merge targets; this module only resolves an incoming API key
to the user behind it and lists users for administrators.  Keys are
compared after trimming surrounding whitespace on both sides.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Alliance, Player, User
from galaxyhub.errors import NotFound

logger = logging.getLogger(__name__)


def _user_dict(u: User) -> dict:
    return {
        "id": u.id,
        "player_id": u.player_id,
        "alliance_id": u.alliance_id,
        "language": u.language,
        "role": u.role,
        "last_activity_at": u.last_activity_at,
        "created_at": u.created_at,
        "updated_at": u.updated_at,
    }


def resolve_user_by_api_key(engine: Engine, api_key: str) -> dict:
    """Return the user owning *api_key*.

    Raises :class:`~galaxyhub.errors.NotFound` on a miss, including blank keys.
    """
    token = (api_key or "").strip()
    if not token:
        raise NotFound("API key not recognised")

    with get_session(engine) as session:
        user = session.scalar(select(User).where(func.trim(User.api_key) == token))
        if user is None:
            logger.info("Rejected unknown API key")
            raise NotFound("API key not recognised")
        return _user_dict(user)


def list_users(engine: Engine) -> list[dict]:
    """All users with their bound player and alliance names, by id."""
    with get_session(engine) as session:
        rows = session.execute(
            select(User, Player.name.label("player_name"), Alliance.name.label("alliance_name"))
            .outerjoin(Player, Player.id == User.player_id)
            .outerjoin(Alliance, Alliance.id == User.alliance_id)
            .order_by(User.id)
        ).all()
        return [
            {**_user_dict(row.User), "player_name": row.player_name, "alliance_name": row.alliance_name}
            for row in rows
        ]


def create_user(
    engine: Engine,
    api_key: str,
    *,
    player_id: int | None = None,
    alliance_id: int | None = None,
    language: str | None = None,
    role: str | None = None,
) -> dict:
    """Register an API key.  Used by provisioning scripts and tests."""
    user = User(api_key=api_key.strip(), player_id=player_id, alliance_id=alliance_id)
    if language:
        user.language = language
    if role:
        user.role = role
    with get_session(engine) as session:
        session.add(user)
        session.flush()
        logger.info("User %d created (role=%s)", user.id, user.role)
        return _user_dict(user)


def touch_user_activity(engine: Engine, user_id: int, now: datetime | None = None) -> None:
    """Stamp ``last_activity_at``; raises NotFound for an unknown user."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        user.last_activity_at = now or datetime.now(UTC)
