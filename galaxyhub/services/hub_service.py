"""
galaxyhub.services.hub_service — Alliance & Galaxy Views
=========================================================

Read-only joins over the planet registry, the roster and the scan markers.
Nothing here creates or mutates a row.

"Active" planets are those whose status is NULL or anything but
``deleted``; soft-deleted bodies stay reachable through
:func:`galaxyhub.services.planet_service.get_planet` only.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.orm import Session

from galaxyhub.constants import MARKER_POSITION, PlanetStatus
from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Planet, Player
from galaxyhub.services.planet_service import planet_dict
from galaxyhub.services.roster_service import require_alliance

logger = logging.getLogger(__name__)

_ACTIVE = or_(Planet.status.is_(None), Planet.status != PlanetStatus.DELETED.value)


def _roster(session: Session, alliance_id: int, column) -> list[dict]:
    """Per live member, the active planets where *column* is set."""
    players = session.scalars(
        select(Player)
        .where(Player.alliance_id == alliance_id, Player.is_deleted.is_(False))
        .order_by(Player.name, Player.id)
    ).all()
    if not players:
        return []

    planets = session.scalars(
        select(Planet)
        .where(
            Planet.player_id.in_([p.id for p in players]),
            Planet.planet != MARKER_POSITION,
            column.is_not(None),
            _ACTIVE,
        )
        .order_by(Planet.galaxy, Planet.system, Planet.planet, Planet.type)
    ).all()

    by_player: dict[int, list[Planet]] = {p.id: [] for p in players}
    for planet in planets:
        by_player[planet.player_id].append(planet)

    return [
        {"player": p, "planets": by_player[p.id]}
        for p in players
    ]


# ---------------------------------------------------------------------------
# Alliance views
# ---------------------------------------------------------------------------
def get_alliance_planets(engine: Engine, alliance_id: int) -> list[dict]:
    """Active planets of every alliance member, ordered by galaxy/system/planet."""
    with get_session(engine) as session:
        require_alliance(session, alliance_id)
        rows = session.scalars(
            select(Planet)
            .join(Player, Player.id == Planet.player_id)
            .where(Player.alliance_id == alliance_id, _ACTIVE)
            .order_by(Planet.galaxy, Planet.system, Planet.planet, Planet.type)
        ).all()
        return [planet_dict(p) for p in rows]


def get_alliance_fleet(engine: Engine, alliance_id: int) -> list[dict]:
    """Fleet roster: each live member's fleet score and stationed fleets.

    Members without any stationed fleet are listed with an empty list.
    """
    with get_session(engine) as session:
        require_alliance(session, alliance_id)
        return [
            {
                "player_id": entry["player"].id,
                "player_name": entry["player"].name,
                "score_fleet": entry["player"].score_fleet,
                "fleets": [
                    {"coordinates": p.coordinates, "type": p.type, "fleet": p.fleet}
                    for p in entry["planets"]
                ],
            }
            for entry in _roster(session, alliance_id, Planet.fleet)
        ]


def get_alliance_buildings(engine: Engine, alliance_id: int) -> list[dict]:
    """Building roster: each live member's known building levels per planet."""
    with get_session(engine) as session:
        require_alliance(session, alliance_id)
        return [
            {
                "player_id": entry["player"].id,
                "player_name": entry["player"].name,
                "planets": [
                    {
                        "coordinates": p.coordinates,
                        "type": p.type,
                        "buildings": p.buildings,
                        "points": p.points,
                    }
                    for p in entry["planets"]
                ],
            }
            for entry in _roster(session, alliance_id, Planet.buildings)
        ]


# ---------------------------------------------------------------------------
# Galaxy views
# ---------------------------------------------------------------------------
def get_galaxy_system(engine: Engine, galaxy: int, system: int) -> list[dict]:
    """Active bodies in one system, marker excluded, by position then type."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Planet)
            .where(
                Planet.galaxy == galaxy,
                Planet.system == system,
                Planet.planet > MARKER_POSITION,
                _ACTIVE,
            )
            .order_by(Planet.planet, Planet.type)
        ).all()
        return [planet_dict(p) for p in rows]


def get_galaxy_scan_status(engine: Engine) -> list[dict]:
    """Last full-scan time per (galaxy, system), read from the markers."""
    with get_session(engine) as session:
        rows = session.execute(
            select(Planet.galaxy, Planet.system, func.max(Planet.updated_at).label("last_scan_at"))
            .where(Planet.planet == MARKER_POSITION)
            .group_by(Planet.galaxy, Planet.system)
            .order_by(Planet.galaxy, Planet.system)
        ).all()
        return [
            {"galaxy": r.galaxy, "system": r.system, "last_scan_at": r.last_scan_at}
            for r in rows
        ]


def get_system_last_scan(engine: Engine, galaxy: int, system: int) -> datetime | None:
    with get_session(engine) as session:
        return session.scalar(
            select(Planet.updated_at)
            .where(
                Planet.galaxy == galaxy,
                Planet.system == system,
                Planet.planet == MARKER_POSITION,
            )
            .order_by(Planet.updated_at.desc())
            .limit(1)
        )
