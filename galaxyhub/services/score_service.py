"""
galaxyhub.services.score_service — Player Score Time Series
============================================================

Score snapshots are historical facts: one row per (player, recorded_at),
written once and never merged.  A second snapshot for the same instant is
rejected with :class:`~galaxyhub.errors.ConflictViolation`.

Chart reads come in two orderings and both are relied on by dashboards:

* full chart    — ascending by (player_id, recorded_at), for trend lines.
* recent chart  — descending by recorded_at then player_id, last N days.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from galaxyhub.constants import RECENT_CHART_DAYS, SCORE_CATEGORIES
from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Player, PlayerScore
from galaxyhub.engine.keys import score_key
from galaxyhub.errors import ConflictViolation, ConstraintViolation, InvalidInput, NotFound
from galaxyhub.services.roster_service import require_alliance

logger = logging.getLogger(__name__)


def _score_dict(s: PlayerScore) -> dict:
    return {
        "id": s.id,
        "player_id": s.player_id,
        "score_total": s.score_total,
        "score_economy": s.score_economy,
        "score_research": s.score_research,
        "score_military": s.score_military,
        "score_defense": s.score_defense,
        "rank_total": s.rank_total,
        "rank_economy": s.rank_economy,
        "rank_research": s.rank_research,
        "rank_military": s.rank_military,
        "rank_defense": s.rank_defense,
        "recorded_at": s.recorded_at,
    }


def _columns(prefix: str, values: Mapping[str, int | None] | None) -> dict[str, int | None]:
    values = values or {}
    unknown = set(values) - set(SCORE_CATEGORIES)
    if unknown:
        raise InvalidInput(f"Unknown score categories: {sorted(unknown)}")
    return {f"{prefix}_{category}": value for category, value in values.items()}


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------
def append_score_snapshot(
    engine: Engine,
    player_id: int,
    totals: Mapping[str, int],
    ranks: Mapping[str, int | None] | None = None,
    recorded_at: datetime | None = None,
) -> dict:
    """Append one snapshot and return it.

    Raises
    ------
    InvalidInput
        A category outside ``SCORE_CATEGORIES``.
    ConstraintViolation
        *player_id* is not a registered player.
    ConflictViolation
        A snapshot for (*player_id*, *recorded_at*) already exists.
    """
    values = {**_columns("score", totals), **_columns("rank", ranks)}
    key = score_key(player_id, recorded_at or datetime.now(UTC))

    with get_session(engine) as session:
        if session.get(Player, player_id) is None:
            raise ConstraintViolation(f"Player {player_id} does not exist")
        if session.scalar(select(PlayerScore.id).filter_by(**key)) is not None:
            raise ConflictViolation(
                f"Score for player {player_id} at {key['recorded_at']} already recorded"
            )

        snapshot = PlayerScore(**key, **values)
        try:
            with session.begin_nested():
                session.add(snapshot)
        except IntegrityError as exc:
            # Lost the race to a concurrent append for the same instant.
            raise ConflictViolation(
                f"Score for player {player_id} at {key['recorded_at']} already recorded"
            ) from exc

        logger.debug("Score snapshot appended for player %d at %s", player_id, key["recorded_at"])
        return _score_dict(snapshot)


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------
def get_alliance_score_chart(engine: Engine, alliance_id: int) -> list[dict]:
    """Every snapshot of every current member, ascending by (player, time)."""
    with get_session(engine) as session:
        require_alliance(session, alliance_id)
        rows = session.scalars(
            select(PlayerScore)
            .join(Player, Player.id == PlayerScore.player_id)
            .where(Player.alliance_id == alliance_id)
            .order_by(PlayerScore.player_id, PlayerScore.recorded_at.asc())
        ).all()
        return [_score_dict(s) for s in rows]


def get_alliance_recent_chart(
    engine: Engine,
    alliance_id: int,
    days: int = RECENT_CHART_DAYS,
    now: datetime | None = None,
) -> list[dict]:
    """Snapshots from the last *days* days, newest first then by player."""
    since = (now or datetime.now(UTC)) - timedelta(days=days)
    with get_session(engine) as session:
        require_alliance(session, alliance_id)
        rows = session.scalars(
            select(PlayerScore)
            .join(Player, Player.id == PlayerScore.player_id)
            .where(Player.alliance_id == alliance_id, PlayerScore.recorded_at >= since)
            .order_by(PlayerScore.recorded_at.desc(), PlayerScore.player_id)
        ).all()
        return [_score_dict(s) for s in rows]


def get_player_chart(engine: Engine, player_id: int) -> list[dict]:
    with get_session(engine) as session:
        if session.get(Player, player_id) is None:
            raise NotFound(f"Player {player_id} not found")
        rows = session.scalars(
            select(PlayerScore)
            .where(PlayerScore.player_id == player_id)
            .order_by(PlayerScore.recorded_at.asc())
        ).all()
        return [_score_dict(s) for s in rows]
