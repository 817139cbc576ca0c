"""
galaxyhub.services.report_service — Report Store
=================================================

Five report kinds, all keyed by the external id the originating client
assigned:

* spy reports       — what our espionage saw on a body.
* recycle reports   — debris harvested from a field.
* battle reports    — losses, loot and the resulting debris field.
* expedition reports — what an expedition came back with (no coordinates).
* hostile spying    — a foreign espionage attempt on one of our bodies.

Re-submitting an id overwrites the observational fields and leaves the
identity fields (external id, coordinates, type) exactly as first stored.
The reporter, where a kind carries one, is kept once set.

Overwrite is last-write-wins: a resubmission carrying an *older*
``report_time`` still replaces newer data.  Callers that want causal
ordering must enforce it before calling.

Each upsert also records the external id in the dedup ledger, in the same
transaction, so ``check_duplicate_message_ids`` sees it immediately.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, and_, func, select

from galaxyhub.constants import (
    BATTLE_HISTORY_LIMIT,
    HOSTILE_SPYING_PAGE_SIZE,
    SPY_HISTORY_LIMIT,
    PlanetType,
)
from galaxyhub.database.engine import get_session
from galaxyhub.database.models import (
    Alliance,
    BattleReport,
    ExpeditionReport,
    HostileSpying,
    Planet,
    Player,
    RecycleReport,
    SpyReport,
)
from galaxyhub.engine.keys import (
    Coordinates,
    normalize_planet_type,
    report_key,
    resolve_coordinates,
)
from galaxyhub.engine.merge import apply_fields, atomic_upsert, keep_first, overwrite
from galaxyhub.services.dedup_service import record_in_ledger

logger = logging.getLogger(__name__)

_SPY_POLICIES = {
    "resources": overwrite,
    "buildings": overwrite,
    "research": overwrite,
    "fleet": overwrite,
    "defense": overwrite,
    "report_time": overwrite,
    "reported_by": keep_first,
}

_RECYCLE_POLICIES = {
    "metal": overwrite,
    "crystal": overwrite,
    "metal_tf": overwrite,
    "crystal_tf": overwrite,
    "report_time": overwrite,
    "reported_by": keep_first,
}

_BATTLE_POLICIES = {
    "attacker_lost": overwrite,
    "defender_lost": overwrite,
    "metal": overwrite,
    "crystal": overwrite,
    "deuterium": overwrite,
    "debris_metal": overwrite,
    "debris_crystal": overwrite,
    "report_time": overwrite,
    "reported_by": keep_first,
}

_EXPEDITION_POLICIES = {
    "message": overwrite,
    "type": overwrite,
    "resources": overwrite,
    "fleet": overwrite,
    "report_time": overwrite,
    "reported_by": keep_first,
}

_HOSTILE_POLICIES = {
    "attacker_coordinates": overwrite,
    "target_coordinates": overwrite,
    "report_time": overwrite,
}


def _spy_dict(r: SpyReport) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "coordinates": r.coordinates,
        "galaxy": r.galaxy,
        "system": r.system,
        "planet": r.planet,
        "type": r.type,
        "resources": r.resources,
        "buildings": r.buildings,
        "research": r.research,
        "fleet": r.fleet,
        "defense": r.defense,
        "reported_by": r.reported_by,
        "report_time": r.report_time,
        "created_at": r.created_at,
    }


def _recycle_dict(r: RecycleReport) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "coordinates": r.coordinates,
        "galaxy": r.galaxy,
        "system": r.system,
        "planet": r.planet,
        "metal": r.metal,
        "crystal": r.crystal,
        "metal_tf": r.metal_tf,
        "crystal_tf": r.crystal_tf,
        "reported_by": r.reported_by,
        "report_time": r.report_time,
        "created_at": r.created_at,
    }


def _battle_dict(r: BattleReport) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "coordinates": r.coordinates,
        "galaxy": r.galaxy,
        "system": r.system,
        "planet": r.planet,
        "type": r.type,
        "attacker_lost": r.attacker_lost,
        "defender_lost": r.defender_lost,
        "metal": r.metal,
        "crystal": r.crystal,
        "deuterium": r.deuterium,
        "debris_metal": r.debris_metal,
        "debris_crystal": r.debris_crystal,
        "reported_by": r.reported_by,
        "report_time": r.report_time,
        "created_at": r.created_at,
    }


def _expedition_dict(r: ExpeditionReport) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "message": r.message,
        "type": r.type,
        "resources": r.resources,
        "fleet": r.fleet,
        "reported_by": r.reported_by,
        "report_time": r.report_time,
        "created_at": r.created_at,
    }


def _hostile_dict(r: HostileSpying) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "attacker_coordinates": r.attacker_coordinates,
        "target_coordinates": r.target_coordinates,
        "report_time": r.report_time,
        "created_at": r.created_at,
    }


def _placement(coords: Coordinates) -> dict:
    return {
        "coordinates": coords.render(),
        "galaxy": coords.galaxy,
        "system": coords.system,
        "planet": coords.planet,
    }


def _optional_coordinates(value: str | Coordinates | None) -> str | None:
    return None if value is None else resolve_coordinates(value).render()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def upsert_spy_report(
    engine: Engine,
    external_id: str | int,
    coordinates: str | Coordinates | None,
    galaxy: int | None = None,
    system: int | None = None,
    planet: int | None = None,
    type: str | PlanetType | None = PlanetType.PLANET,
    resources: dict | None = None,
    buildings: dict | None = None,
    research: dict | None = None,
    fleet: dict | None = None,
    defense: dict | None = None,
    reported_by: int | None = None,
    report_time: datetime | None = None,
) -> bool:
    """Insert a spy report or overwrite its observation.  True when created."""
    key = report_key(external_id)
    coords = resolve_coordinates(coordinates, galaxy, system, planet)
    planet_type = normalize_planet_type(type)
    incoming = {
        "resources": resources,
        "buildings": buildings,
        "research": research,
        "fleet": fleet,
        "defense": defense,
        "report_time": report_time,
        "reported_by": reported_by,
    }

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            SpyReport,
            key,
            create=lambda: SpyReport(
                **key, **_placement(coords), type=planet_type, **incoming,
            ),
            merge=lambda report: apply_fields(report, incoming, _SPY_POLICIES),
        )
        record_in_ledger(session, [key["external_id"]])

    logger.debug("Spy report %s at %s created=%s", key["external_id"], coords, created)
    return created


def upsert_recycle_report(
    engine: Engine,
    external_id: str | int,
    coordinates: str | Coordinates | None,
    galaxy: int | None = None,
    system: int | None = None,
    planet: int | None = None,
    metal: int = 0,
    crystal: int = 0,
    metal_tf: int = 0,
    crystal_tf: int = 0,
    report_time: datetime | None = None,
    reported_by: int | None = None,
) -> bool:
    """Insert a recycle report or overwrite its yield.  True when created."""
    key = report_key(external_id)
    coords = resolve_coordinates(coordinates, galaxy, system, planet)
    incoming = {
        "metal": metal,
        "crystal": crystal,
        "metal_tf": metal_tf,
        "crystal_tf": crystal_tf,
        "report_time": report_time,
        "reported_by": reported_by,
    }

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            RecycleReport,
            key,
            create=lambda: RecycleReport(**key, **_placement(coords), **incoming),
            merge=lambda report: apply_fields(report, incoming, _RECYCLE_POLICIES),
        )
        record_in_ledger(session, [key["external_id"]])

    logger.debug("Recycle report %s at %s created=%s", key["external_id"], coords, created)
    return created


def upsert_battle_report(
    engine: Engine,
    external_id: str | int,
    coordinates: str | Coordinates | None,
    galaxy: int | None = None,
    system: int | None = None,
    planet: int | None = None,
    type: str | PlanetType | None = PlanetType.PLANET,
    attacker_lost: int = 0,
    defender_lost: int = 0,
    metal: int = 0,
    crystal: int = 0,
    deuterium: int = 0,
    debris_metal: int = 0,
    debris_crystal: int = 0,
    report_time: datetime | None = None,
    reported_by: int | None = None,
) -> bool:
    """Insert a battle report or overwrite losses, loot and debris.  True when created."""
    key = report_key(external_id)
    coords = resolve_coordinates(coordinates, galaxy, system, planet)
    planet_type = normalize_planet_type(type)
    incoming = {
        "attacker_lost": attacker_lost,
        "defender_lost": defender_lost,
        "metal": metal,
        "crystal": crystal,
        "deuterium": deuterium,
        "debris_metal": debris_metal,
        "debris_crystal": debris_crystal,
        "report_time": report_time,
        "reported_by": reported_by,
    }

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            BattleReport,
            key,
            create=lambda: BattleReport(
                **key, **_placement(coords), type=planet_type, **incoming,
            ),
            merge=lambda report: apply_fields(report, incoming, _BATTLE_POLICIES),
        )
        record_in_ledger(session, [key["external_id"]])

    logger.debug("Battle report %s at %s created=%s", key["external_id"], coords, created)
    return created


def upsert_expedition_report(
    engine: Engine,
    external_id: str | int,
    message: str | None = None,
    type: str | None = None,
    resources: dict | None = None,
    fleet: dict | None = None,
    report_time: datetime | None = None,
    reported_by: int | None = None,
) -> bool:
    """Insert an expedition outcome or overwrite it.  True when created.

    *type* is the outcome kind the client classified (``resources``,
    ``fleet``, ``combat`` ...), stored as given.
    """
    key = report_key(external_id)
    incoming = {
        "message": message,
        "type": type,
        "resources": resources,
        "fleet": fleet,
        "report_time": report_time,
        "reported_by": reported_by,
    }

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            ExpeditionReport,
            key,
            create=lambda: ExpeditionReport(**key, **incoming),
            merge=lambda report: apply_fields(report, incoming, _EXPEDITION_POLICIES),
        )
        record_in_ledger(session, [key["external_id"]])

    logger.debug("Expedition report %s created=%s", key["external_id"], created)
    return created


def upsert_hostile_spying(
    engine: Engine,
    external_id: str | int,
    attacker_coordinates: str | Coordinates | None,
    target_coordinates: str | Coordinates | None,
    report_time: datetime | None = None,
) -> bool:
    """Record a foreign espionage attempt, or overwrite both ends and the time.  True when created."""
    key = report_key(external_id)
    incoming = {
        "attacker_coordinates": _optional_coordinates(attacker_coordinates),
        "target_coordinates": _optional_coordinates(target_coordinates),
        "report_time": report_time,
    }

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            HostileSpying,
            key,
            create=lambda: HostileSpying(**key, **incoming),
            merge=lambda report: apply_fields(report, incoming, _HOSTILE_POLICIES),
        )
        record_in_ledger(session, [key["external_id"]])

    logger.debug(
        "Hostile spying %s: %s -> %s created=%s",
        key["external_id"], incoming["attacker_coordinates"],
        incoming["target_coordinates"], created,
    )
    return created


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_spy_report(engine: Engine, external_id: str | int) -> dict | None:
    with get_session(engine) as session:
        report = session.scalar(select(SpyReport).filter_by(**report_key(external_id)))
        return _spy_dict(report) if report else None


def get_recycle_report(engine: Engine, external_id: str | int) -> dict | None:
    with get_session(engine) as session:
        report = session.scalar(select(RecycleReport).filter_by(**report_key(external_id)))
        return _recycle_dict(report) if report else None


def get_battle_report(engine: Engine, external_id: str | int) -> dict | None:
    with get_session(engine) as session:
        report = session.scalar(select(BattleReport).filter_by(**report_key(external_id)))
        return _battle_dict(report) if report else None


def get_expedition_report(engine: Engine, external_id: str | int) -> dict | None:
    with get_session(engine) as session:
        report = session.scalar(select(ExpeditionReport).filter_by(**report_key(external_id)))
        return _expedition_dict(report) if report else None


def get_hostile_spying_report(engine: Engine, external_id: str | int) -> dict | None:
    with get_session(engine) as session:
        report = session.scalar(select(HostileSpying).filter_by(**report_key(external_id)))
        return _hostile_dict(report) if report else None


def get_spy_reports(
    engine: Engine,
    galaxy: int,
    system: int,
    planet: int,
    type: str | PlanetType | None = PlanetType.PLANET,
    limit: int = SPY_HISTORY_LIMIT,
) -> list[dict]:
    """Spy history for one body, newest first."""
    coords = Coordinates(galaxy, system, planet)
    with get_session(engine) as session:
        rows = session.scalars(
            select(SpyReport)
            .where(
                SpyReport.galaxy == coords.galaxy,
                SpyReport.system == coords.system,
                SpyReport.planet == coords.planet,
                SpyReport.type == normalize_planet_type(type),
            )
            .order_by(SpyReport.created_at.desc(), SpyReport.id.desc())
            .limit(limit)
        ).all()
        return [_spy_dict(r) for r in rows]


def get_latest_spy_reports_for_system(engine: Engine, galaxy: int, system: int) -> list[dict]:
    """The most recent spy report per (planet, type) in a system."""
    ranked = (
        select(
            SpyReport.id,
            func.row_number().over(
                partition_by=(SpyReport.planet, SpyReport.type),
                order_by=(SpyReport.created_at.desc(), SpyReport.id.desc()),
            ).label("rn"),
        )
        .where(SpyReport.galaxy == galaxy, SpyReport.system == system)
        .subquery()
    )
    with get_session(engine) as session:
        rows = session.scalars(
            select(SpyReport)
            .join(ranked, ranked.c.id == SpyReport.id)
            .where(ranked.c.rn == 1)
            .order_by(SpyReport.planet, SpyReport.type)
        ).all()
        return [_spy_dict(r) for r in rows]


def get_battle_reports(
    engine: Engine,
    galaxy: int,
    system: int,
    planet: int,
    limit: int = BATTLE_HISTORY_LIMIT,
) -> list[dict]:
    """Battle history at one position, newest first, with the reporter's name."""
    coords = Coordinates(galaxy, system, planet)
    with get_session(engine) as session:
        rows = session.execute(
            select(BattleReport, Player.name)
            .outerjoin(Player, Player.id == BattleReport.reported_by)
            .where(
                BattleReport.galaxy == coords.galaxy,
                BattleReport.system == coords.system,
                BattleReport.planet == coords.planet,
            )
            .order_by(BattleReport.created_at.desc(), BattleReport.id.desc())
            .limit(limit)
        ).all()
        return [{**_battle_dict(report), "reporter_name": name} for report, name in rows]


# ---------------------------------------------------------------------------
# Hostile spying views
# ---------------------------------------------------------------------------
def _hostile_search(search: str | None) -> list:
    if not search:
        return []
    return [
        HostileSpying.attacker_coordinates.contains(search, autoescape=True)
        | HostileSpying.target_coordinates.contains(search, autoescape=True)
    ]


def get_hostile_spying(
    engine: Engine,
    search: str | None = None,
    limit: int = HOSTILE_SPYING_PAGE_SIZE,
    offset: int = 0,
) -> list[dict]:
    """One page of foreign espionage attempts, newest first.

    *search* matches a substring of either the attacker's or the target's
    coordinates.
    """
    with get_session(engine) as session:
        rows = session.scalars(
            select(HostileSpying)
            .where(*_hostile_search(search))
            .order_by(HostileSpying.created_at.desc(), HostileSpying.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        return [_hostile_dict(r) for r in rows]


def count_hostile_spying(engine: Engine, search: str | None = None) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(HostileSpying).where(*_hostile_search(search))
        )


def _with_attacker(stmt):
    """Resolve the attacking position to its planet owner and alliance."""
    return (
        stmt.select_from(HostileSpying)
        .outerjoin(
            Planet,
            and_(
                Planet.coordinates == HostileSpying.attacker_coordinates,
                Planet.type == PlanetType.PLANET.value,
            ),
        )
        .outerjoin(Player, Player.id == Planet.player_id)
        .outerjoin(Alliance, Alliance.id == Player.alliance_id)
    )


def get_hostile_spying_overview(
    engine: Engine,
    attacker: str | None = None,
    target: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = HOSTILE_SPYING_PAGE_SIZE,
    offset: int = 0,
) -> list[dict]:
    """Foreign espionage grouped by attacking position, most recently active first.

    The attacker is identified through the planet registry: the owner of the
    planet (not moon) at the attacking coordinates, and that owner's alliance.

    Filters narrow the attempts before grouping, so counts and target lists
    only cover matching attempts:

    * *attacker* — substring of the owner's name or the attacker coordinates.
    * *target*   — substring of the target coordinates.
    * *since* / *until* — inclusive bounds on ``report_time``.
    """
    last_seen = func.max(HostileSpying.report_time)
    filters = []
    if attacker:
        filters.append(
            Player.name.contains(attacker, autoescape=True)
            | HostileSpying.attacker_coordinates.contains(attacker, autoescape=True)
        )
    if target:
        filters.append(HostileSpying.target_coordinates.contains(target, autoescape=True))
    if since is not None:
        filters.append(HostileSpying.report_time >= since)
    if until is not None:
        filters.append(HostileSpying.report_time <= until)

    with get_session(engine) as session:
        rows = session.execute(
            _with_attacker(
                select(
                    HostileSpying.attacker_coordinates,
                    Player.name,
                    Alliance.tag,
                    func.count(HostileSpying.id),
                    last_seen,
                )
            )
            .where(*filters)
            .group_by(HostileSpying.attacker_coordinates, Player.name, Alliance.tag)
            .order_by(last_seen.desc().nulls_last(), HostileSpying.attacker_coordinates)
            .limit(limit)
            .offset(offset)
        ).all()

        attackers = [row[0] for row in rows]
        targets: dict[str | None, list[str]] = {a: [] for a in attackers}
        if attackers:
            pairs = session.execute(
                _with_attacker(
                    select(HostileSpying.attacker_coordinates, HostileSpying.target_coordinates)
                )
                .where(
                    *filters,
                    HostileSpying.attacker_coordinates.in_(attackers),
                    HostileSpying.target_coordinates.is_not(None),
                )
                .distinct()
                .order_by(HostileSpying.attacker_coordinates, HostileSpying.target_coordinates)
            ).all()
            for attacking, targeted in pairs:
                targets[attacking].append(targeted)

        return [
            {
                "attacker_coordinates": coords,
                "attacker_name": name,
                "attacker_alliance_tag": tag,
                "spy_count": count,
                "last_spy_time": last,
                "targets": targets[coords],
            }
            for coords, name, tag, count, last in rows
        ]
