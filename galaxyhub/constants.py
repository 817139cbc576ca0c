"""
galaxyhub.constants — Shared Constants
=======================================

Single source of truth for planet types, planet statuses, score categories
and the default read windows.  Import from here instead of repeating string
literals across services.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Planet classification
# ---------------------------------------------------------------------------
class PlanetType(enum.StrEnum):
    """Distinguishes the planet and its moon at the same coordinates."""
    PLANET = "PLANET"
    MOON = "MOON"


class PlanetStatus(enum.StrEnum):
    """Lifecycle flag of a planet row.  NULL in the database means active."""
    NORMAL = "normal"
    DELETED = "deleted"


class UserRole(enum.StrEnum):
    USER = "user"
    ADMIN = "admin"


# Position 0 inside a (galaxy, system) is reserved for the scan marker.
MARKER_POSITION = 0
MARKER_SCANNED = "SCANNED"
MARKER_EMPTY = "EMPTY"


# ---------------------------------------------------------------------------
# Score series
# ---------------------------------------------------------------------------
SCORE_CATEGORIES: tuple[str, ...] = (
    "total", "economy", "research", "military", "defense",
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
RECENT_CHART_DAYS = 56
SPY_HISTORY_LIMIT = 10
BATTLE_HISTORY_LIMIT = 10
HOSTILE_SPYING_PAGE_SIZE = 50
DEFAULT_LANGUAGE = "de"

# Seconds a SQLite writer waits for the database lock (config.yaml).
SQLITE_BUSY_TIMEOUT = 30.0
