"""
galaxyhub.services.planet_service — Planet Registry
====================================================

Merges observations of planets and moons into one canonical row per
``(coordinates, type)``.

Three submission kinds touch the same row, each owning its own fields:

* **Galaxy scan** — name + owner (last scan wins), game planet id
  (coalesce: a scan variant that doesn't report it must not erase it).
* **Detailed observation** — buildings / fleet / defense / resources /
  production rate; never touches name or owner.
* **Empire page** — the owner's own full view; overwrites everything and
  revives a soft-deleted row.

Position 0 of every scanned system is a marker row whose ``updated_at``
says when that system was last fully scanned.  Destroyed bodies are
soft-deleted (``status='deleted'``) and kept for report history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from galaxyhub.constants import (
    MARKER_EMPTY,
    MARKER_POSITION,
    MARKER_SCANNED,
    PlanetStatus,
    PlanetType,
)
from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Planet
from galaxyhub.engine.keys import Coordinates, planet_key, resolve_coordinates
from galaxyhub.engine.merge import apply_fields, atomic_upsert, coalesce, overwrite
from galaxyhub.services.roster_service import (
    merge_alliance,
    merge_player_stub,
    set_player_alliance,
)

logger = logging.getLogger(__name__)

_SCAN_POLICIES = {
    "name": overwrite,
    "player_id": overwrite,
    "source_planet_id": coalesce,
}

_DETAIL_POLICIES = {
    "buildings": coalesce,
    "fleet": coalesce,
    "defense": coalesce,
    "resources": coalesce,
    "production_rate": coalesce,
}

_EMPIRE_FIELDS = (
    "source_planet_id", "player_id", "name",
    "fields_used", "fields_max", "temperature", "points",
    "metal_prod_h", "crystal_prod_h", "deut_prod_h", "energy_used", "energy_max",
    "resources", "buildings", "fleet", "defense",
)


# ---------------------------------------------------------------------------
# Submission payloads
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ScannedPlanet:
    """One occupied position on a galaxy page."""
    position: int
    player_id: int | None = None
    player_name: str | None = None
    planet_name: str | None = None
    moon_name: str | None = None
    has_moon: bool = False
    planet_id: int | None = None
    moon_id: int | None = None
    alliance_id: int | None = None
    alliance_tag: str | None = None
    alliance_name: str | None = None


@dataclass(slots=True)
class DestroyedBody:
    position: int
    type: str = PlanetType.PLANET.value


@dataclass(slots=True)
class GalaxyScan:
    """Everything one galaxy page showed for a single system."""
    galaxy: int
    system: int
    planets: list[ScannedPlanet] = field(default_factory=list)
    destroyed: list[DestroyedBody] = field(default_factory=list)


@dataclass(slots=True)
class ScanResult:
    created: int = 0
    skipped: int = 0
    deleted: int = 0
    marker: str = MARKER_SCANNED


@dataclass(slots=True)
class EmpirePlanet:
    """The owner's own view of a planet (empire overview)."""
    player_id: int
    source_planet_id: int
    name: str
    coordinates: str
    fields_used: int = 0
    fields_max: int = 0
    temperature: int = 0
    points: int = 0
    metal_prod_h: int = 0
    crystal_prod_h: int = 0
    deut_prod_h: int = 0
    energy_used: int = 0
    energy_max: int = 0
    resources: dict[str, int] = field(default_factory=dict)
    buildings: dict[str, int] = field(default_factory=dict)
    fleet: dict[str, int] = field(default_factory=dict)
    defense: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _now(observed_at: datetime | None) -> datetime:
    return observed_at or datetime.now(UTC)


def _new_planet(coords: Coordinates, key: dict, ts: datetime, **values: Any) -> Planet:
    return Planet(
        coordinates=key["coordinates"],
        type=key["type"],
        galaxy=coords.galaxy,
        system=coords.system,
        planet=coords.planet,
        status=PlanetStatus.NORMAL.value,
        created_at=ts,
        updated_at=ts,
        **values,
    )


def planet_dict(p: Planet) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "player_id": p.player_id,
        "coordinates": p.coordinates,
        "galaxy": p.galaxy,
        "system": p.system,
        "planet": p.planet,
        "type": p.type,
        "source_planet_id": p.source_planet_id,
        "buildings": p.buildings,
        "fleet": p.fleet,
        "defense": p.defense,
        "resources": p.resources,
        "production_rate": p.production_rate,
        "points": p.points,
        "status": p.status,
        "created_at": p.created_at,
        "updated_at": p.updated_at,
    }


# ---------------------------------------------------------------------------
# Session-level merges
# ---------------------------------------------------------------------------
def merge_galaxy_scan(
    session: Session,
    *,
    name: str | None,
    player_id: int | None,
    coords: Coordinates,
    planet_type: str | PlanetType | None,
    source_planet_id: int | None,
    observed_at: datetime | None = None,
) -> bool:
    """Merge one scanned body into the registry.  Returns True when created."""
    key = planet_key(coords, planet_type)
    ts = _now(observed_at)
    incoming = {
        "name": name,
        "player_id": player_id,
        "source_planet_id": source_planet_id,
    }

    def _merge(planet: Planet) -> None:
        apply_fields(planet, incoming, _SCAN_POLICIES)
        planet.updated_at = ts

    _, created = atomic_upsert(
        session,
        Planet,
        key,
        create=lambda: _new_planet(coords, key, ts, **incoming),
        merge=_merge,
    )
    return created


def soft_delete(session: Session, coords: Coordinates, planet_type: str | None,
                observed_at: datetime | None = None) -> bool:
    planet = session.scalar(
        select(Planet).filter_by(**planet_key(coords, planet_type)).with_for_update()
    )
    if planet is None:
        return False
    if planet.status != PlanetStatus.DELETED.value:
        planet.status = PlanetStatus.DELETED.value
        planet.updated_at = _now(observed_at)
    return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def upsert_planet_from_scan(
    engine: Engine,
    name: str | None,
    player_id: int | None,
    coordinates: str | Coordinates | None,
    galaxy: int | None = None,
    system: int | None = None,
    planet: int | None = None,
    type: str | PlanetType | None = PlanetType.PLANET,
    source_planet_id: int | None = None,
    observed_at: datetime | None = None,
) -> bool:
    """Galaxy-scan merge for a single body.

    Absent → created with status ``normal``.  Present → name and owner are
    overwritten, ``source_planet_id`` only when the scan carries one, and
    ``updated_at`` is refreshed.  A soft-deleted row stays deleted.
    """
    coords = resolve_coordinates(coordinates, galaxy, system, planet)
    with get_session(engine) as session:
        created = merge_galaxy_scan(
            session,
            name=name,
            player_id=player_id,
            coords=coords,
            planet_type=type,
            source_planet_id=source_planet_id,
            observed_at=observed_at,
        )
    logger.debug("Scan merge %s %s created=%s", coords, type, created)
    return created


def merge_detailed_observation(
    engine: Engine,
    coordinates: str | Coordinates,
    type: str | PlanetType | None = PlanetType.PLANET,
    *,
    buildings: dict | None = None,
    fleet: dict | None = None,
    defense: dict | None = None,
    resources: dict | None = None,
    production_rate: int | None = None,
    observed_at: datetime | None = None,
) -> bool:
    """Merge detailed fields; fields left as ``None`` keep their stored value.

    Name and owner are never touched.  An unknown coordinate gets an
    unclaimed row so the observation isn't lost; a later scan fills in the
    owner.
    """
    coords = resolve_coordinates(coordinates)
    key = planet_key(coords, type)
    ts = _now(observed_at)
    incoming = {
        "buildings": buildings,
        "fleet": fleet,
        "defense": defense,
        "resources": resources,
        "production_rate": production_rate,
    }

    def _merge(planet: Planet) -> None:
        if apply_fields(planet, incoming, _DETAIL_POLICIES):
            planet.updated_at = ts

    with get_session(engine) as session:
        _, created = atomic_upsert(
            session,
            Planet,
            key,
            create=lambda: _new_planet(coords, key, ts, **incoming),
            merge=_merge,
        )
    return created


def upsert_planet_from_empire(
    engine: Engine,
    empire: EmpirePlanet,
    observed_at: datetime | None = None,
) -> bool:
    """Owner's full observation: every field overwritten, status reset."""
    coords = resolve_coordinates(empire.coordinates)
    key = planet_key(coords, PlanetType.PLANET)
    ts = _now(observed_at)
    incoming = {name: getattr(empire, name) for name in _EMPIRE_FIELDS}

    def _merge(planet: Planet) -> None:
        apply_fields(planet, incoming, dict.fromkeys(_EMPIRE_FIELDS, overwrite))
        planet.status = PlanetStatus.NORMAL.value
        planet.updated_at = ts

    with get_session(engine) as session:
        merge_player_stub(session, empire.player_id, "Unknown")
        _, created = atomic_upsert(
            session,
            Planet,
            key,
            create=lambda: _new_planet(coords, key, ts, **incoming),
            merge=_merge,
        )
    return created


def mark_planet_deleted(
    engine: Engine,
    coordinates: str | Coordinates,
    type: str | PlanetType | None = PlanetType.PLANET,
    observed_at: datetime | None = None,
) -> bool:
    """Soft-delete a destroyed or abandoned body.  False when unknown."""
    coords = resolve_coordinates(coordinates)
    with get_session(engine) as session:
        return soft_delete(session, coords, type, observed_at)


def get_planet(
    engine: Engine,
    coordinates: str | Coordinates,
    type: str | PlanetType | None = PlanetType.PLANET,
) -> dict | None:
    """Direct key lookup.  Soft-deleted rows are returned too."""
    coords = resolve_coordinates(coordinates)
    with get_session(engine) as session:
        planet = session.scalar(select(Planet).filter_by(**planet_key(coords, type)))
        return planet_dict(planet) if planet else None


def apply_galaxy_scan(
    engine: Engine,
    scan: GalaxyScan,
    observed_at: datetime | None = None,
) -> ScanResult:
    """Ingest a whole galaxy page for one system in a single transaction.

    1. Refresh the system's scan marker (position 0).
    2. Soft-delete every body the page reported destroyed.
    3. For each occupied position: ensure the owner (and their alliance),
       then merge the planet and, when present, its moon.

    Positions without a known player id are skipped.
    """
    ts = _now(observed_at)
    result = ScanResult()
    result.marker = MARKER_EMPTY if not scan.planets and not scan.destroyed else MARKER_SCANNED

    with get_session(engine) as session:
        merge_galaxy_scan(
            session,
            name=result.marker,
            player_id=None,
            coords=Coordinates(scan.galaxy, scan.system, MARKER_POSITION),
            planet_type=PlanetType.PLANET,
            source_planet_id=None,
            observed_at=ts,
        )

        for body in scan.destroyed:
            coords = Coordinates(scan.galaxy, scan.system, body.position)
            soft_delete(session, coords, body.type, ts)
            result.deleted += 1

        for entry in scan.planets:
            if not entry.player_id or entry.player_id <= 0:
                result.skipped += 1
                continue

            merge_player_stub(session, entry.player_id, entry.player_name or "Unknown")
            if entry.alliance_id and entry.alliance_tag:
                merge_alliance(
                    session,
                    entry.alliance_id,
                    entry.alliance_name or entry.alliance_tag,
                    entry.alliance_tag,
                )
                set_player_alliance(session, entry.player_id, entry.alliance_id)

            coords = Coordinates(scan.galaxy, scan.system, entry.position)
            merge_galaxy_scan(
                session,
                name=entry.planet_name,
                player_id=entry.player_id,
                coords=coords,
                planet_type=PlanetType.PLANET,
                source_planet_id=entry.planet_id,
                observed_at=ts,
            )
            result.created += 1

            if entry.has_moon:
                merge_galaxy_scan(
                    session,
                    name=entry.moon_name,
                    player_id=entry.player_id,
                    coords=coords,
                    planet_type=PlanetType.MOON,
                    source_planet_id=entry.moon_id,
                    observed_at=ts,
                )
                result.created += 1

    logger.debug(
        "Galaxy scan %d:%d: created=%d skipped=%d deleted=%d marker=%s",
        scan.galaxy, scan.system,
        result.created, result.skipped, result.deleted, result.marker,
    )
    return result
