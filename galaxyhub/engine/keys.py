"""
galaxyhub.engine.keys — Canonical Identity Keys
================================================

Every merge looks its target up by one of these keys:

* planet  → ``(coordinates, type)``
* report  → ``external_id`` (normalised to ``str``)
* score   → ``(player_id, recorded_at)``

Coordinates travel as a structured triple and are stored in their rendered
``"galaxy:system:planet"`` form.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from galaxyhub.constants import MARKER_POSITION, PlanetType
from galaxyhub.errors import InvalidInput


@dataclass(frozen=True, slots=True)
class Coordinates:
    """A location in the game world."""

    galaxy: int
    system: int
    planet: int

    def __post_init__(self) -> None:
        for part in (self.galaxy, self.system, self.planet):
            if isinstance(part, bool) or not isinstance(part, int):
                raise InvalidInput(f"Coordinate parts must be integers: {self!r}")
        if self.galaxy < 1 or self.system < 1 or self.planet < 0:
            raise InvalidInput(f"Coordinates out of range: {self.render()}")

    def render(self) -> str:
        return f"{self.galaxy}:{self.system}:{self.planet}"

    @property
    def is_marker(self) -> bool:
        return self.planet == MARKER_POSITION

    def __str__(self) -> str:
        return self.render()


def parse_coordinates(raw: str) -> Coordinates:
    """Parse ``"1:23:4"`` into :class:`Coordinates`.

    Raises :class:`InvalidInput` for anything that isn't three
    colon-separated integers.
    """
    parts = str(raw).strip().split(":")
    if len(parts) != 3:
        raise InvalidInput(f"Invalid coordinates {raw!r}: expected galaxy:system:planet")
    try:
        galaxy, system, planet = (int(p) for p in parts)
    except ValueError:
        raise InvalidInput(f"Invalid coordinates {raw!r}: parts must be integers") from None
    return Coordinates(galaxy, system, planet)


def resolve_coordinates(
    coordinates: str | Coordinates | None,
    galaxy: int | None = None,
    system: int | None = None,
    planet: int | None = None,
) -> Coordinates:
    """Build :class:`Coordinates` from a rendered string and/or a triple.

    When both are given they must agree; a submission whose display form
    contradicts its own triple is rejected rather than guessed at.
    """
    triple = None
    if galaxy is not None or system is not None or planet is not None:
        if galaxy is None or system is None or planet is None:
            raise InvalidInput("galaxy, system and planet must be given together")
        triple = Coordinates(galaxy, system, planet)

    if coordinates is None:
        if triple is None:
            raise InvalidInput("No coordinates given")
        return triple

    parsed = coordinates if isinstance(coordinates, Coordinates) else parse_coordinates(coordinates)
    if triple is not None and triple != parsed:
        raise InvalidInput(
            f"Coordinates {parsed.render()} disagree with triple {triple.render()}"
        )
    return parsed


def normalize_planet_type(value: str | PlanetType | None) -> str:
    """Return the canonical planet type string; ``None`` means PLANET."""
    if value is None:
        return PlanetType.PLANET.value
    try:
        return PlanetType(str(value).upper()).value
    except ValueError:
        raise InvalidInput(f"Unknown planet type {value!r}") from None


def planet_key(coordinates: Coordinates, planet_type: str | PlanetType | None) -> dict:
    return {
        "coordinates": coordinates.render(),
        "type": normalize_planet_type(planet_type),
    }


def report_key(external_id: str | int) -> dict:
    return {"external_id": normalize_external_id(external_id)}


def score_key(player_id: int, recorded_at: datetime) -> dict:
    """One snapshot per player and instant.

    Aware timestamps are shifted to UTC so the same instant sent with two
    offsets yields one key.  Naive timestamps are taken as UTC already.
    """
    if recorded_at.tzinfo is not None:
        recorded_at = recorded_at.astimezone(UTC)
    return {"player_id": player_id, "recorded_at": recorded_at}


def normalize_external_id(external_id: str | int) -> str:
    """Opaque client tokens are stored as trimmed strings."""
    if external_id is None or isinstance(external_id, bool):
        raise InvalidInput(f"Invalid external id {external_id!r}")
    token = str(external_id).strip()
    if not token:
        raise InvalidInput("External id must not be empty")
    return token
