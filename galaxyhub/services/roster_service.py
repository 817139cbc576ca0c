"""
galaxyhub.services.roster_service — Alliance & Player Registration
===================================================================

Alliances and players are referenced by planets, reports and scores.  Any
authorised submitter may register or update them; every write here is an
idempotent upsert keyed by the game's own id.

Alliance policy (``ensure``-style): the name is set once at creation, the
tag follows the latest registration.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Alliance, Player
from galaxyhub.engine.merge import apply_fields, atomic_upsert, coalesce, overwrite
from galaxyhub.errors import NotFound

logger = logging.getLogger(__name__)

_PLAYER_POLICIES = {
    "name": overwrite,
    "alliance_id": overwrite,
    "main_coordinates": coalesce,
    "score_total": coalesce,
    "score_total_rank": coalesce,
    "score_fleet": coalesce,
    "score_fleet_rank": coalesce,
}


# ---------------------------------------------------------------------------
# Session-level helpers (composable inside larger transactions)
# ---------------------------------------------------------------------------
def merge_alliance(session: Session, alliance_id: int, name: str, tag: str) -> bool:
    """Create the alliance or re-tag it.  Returns True when created."""

    def _retag(alliance: Alliance) -> None:
        if alliance.tag != tag:
            logger.info("Alliance %d re-tagged %r → %r", alliance_id, alliance.tag, tag)
            alliance.tag = tag
            alliance.updated_at = datetime.now(UTC)

    _, created = atomic_upsert(
        session,
        Alliance,
        {"id": alliance_id},
        create=lambda: Alliance(id=alliance_id, name=name, tag=tag),
        merge=_retag,
    )
    return created


def merge_player_stub(session: Session, player_id: int, name: str) -> bool:
    """Insert a minimal player row if missing; never touches an existing one."""
    _, created = atomic_upsert(
        session,
        Player,
        {"id": player_id},
        create=lambda: Player(id=player_id, name=name),
        merge=lambda player: None,
    )
    return created


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def ensure_alliance(engine: Engine, alliance_id: int, name: str, tag: str) -> bool:
    """Idempotent create-or-retag of an alliance."""
    with get_session(engine) as session:
        return merge_alliance(session, alliance_id, name, tag)


def ensure_player(engine: Engine, player_id: int, name: str) -> bool:
    """Make sure *player_id* exists so other rows may reference it."""
    with get_session(engine) as session:
        return merge_player_stub(session, player_id, name)


def upsert_player(
    engine: Engine,
    player_id: int,
    name: str,
    *,
    alliance_id: int | None = None,
    main_coordinates: str | None = None,
    score_total: int | None = None,
    score_total_rank: int | None = None,
    score_fleet: int | None = None,
    score_fleet_rank: int | None = None,
) -> bool:
    """Create or update a player from a player card / statistics page.

    Name and alliance follow the latest submission (leaving an alliance is
    a real change).  Score columns and main coordinates are only replaced
    when the submission carries them.

    Raises :class:`~galaxyhub.errors.ConstraintViolation` when *alliance_id*
    names an alliance that hasn't been registered.
    """
    incoming = {
        "name": name,
        "alliance_id": alliance_id,
        "main_coordinates": main_coordinates,
        "score_total": score_total,
        "score_total_rank": score_total_rank,
        "score_fleet": score_fleet,
        "score_fleet_rank": score_fleet_rank,
    }

    def _merge(player: Player) -> None:
        if apply_fields(player, incoming, _PLAYER_POLICIES):
            player.updated_at = datetime.now(UTC)

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            Player,
            {"id": player_id},
            create=lambda: Player(id=player_id, **incoming),
            merge=_merge,
        )
        return created


def set_player_alliance(session: Session, player_id: int, alliance_id: int) -> None:
    """Move a player into *alliance_id* (no-op when already there)."""
    player = session.get(Player, player_id)
    if player is not None and player.alliance_id != alliance_id:
        player.alliance_id = alliance_id
        player.updated_at = datetime.now(UTC)


def mark_player_deleted(engine: Engine, player_id: int) -> bool:
    """Flag a player as gone from the game.  Returns False if unknown."""
    with get_session(engine) as session:
        player = session.get(Player, player_id)
        if player is None:
            return False
        player.is_deleted = True
        player.updated_at = datetime.now(UTC)
        logger.info("Player %d marked deleted", player_id)
        return True


def require_alliance(session: Session, alliance_id: int) -> Alliance:
    """Fetch an alliance for a read view, raising :class:`NotFound` if absent."""
    alliance = session.get(Alliance, alliance_id)
    if alliance is None:
        raise NotFound(f"Alliance {alliance_id} not found")
    return alliance


def get_player(engine: Engine, player_id: int) -> dict | None:
    with get_session(engine) as session:
        player = session.get(Player, player_id)
        if player is None:
            return None
        return {
            "id": player.id,
            "name": player.name,
            "alliance_id": player.alliance_id,
            "main_coordinates": player.main_coordinates,
            "score_total": player.score_total,
            "score_total_rank": player.score_total_rank,
            "score_fleet": player.score_fleet,
            "score_fleet_rank": player.score_fleet_rank,
            "is_deleted": player.is_deleted,
        }


def get_alliance(engine: Engine, alliance_id: int) -> dict:
    with get_session(engine) as session:
        alliance = require_alliance(session, alliance_id)
        return {"id": alliance.id, "name": alliance.name, "tag": alliance.tag}
