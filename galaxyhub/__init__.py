"""
galaxyhub — Shared Intelligence Store for Alliance Scouting
============================================================
Many scouts submit galaxy scans, combat and espionage reports and score
snapshots about the same game universe.  galaxyhub merges those overlapping,
possibly duplicate, possibly stale submissions into one consistent view per
alliance.

Package layout::

    galaxyhub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Planet types, statuses, score categories
    ├── errors.py          # NotFound / ConflictViolation / ...
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── keys.py        # Coordinates + canonical identity keys
    │   └── merge.py       # Atomic upsert + per-field merge policies
    └── services/
        ├── dedup_service.py   # Message-id deduplication gateway
        ├── planet_service.py  # Planet registry (scans, details, deletion)
        ├── report_service.py  # Spy, recycle, battle, expedition, hostile-spy reports
        ├── score_service.py   # Append-only score time series
        ├── roster_service.py  # Alliances + players
        ├── hub_service.py     # Read-only alliance / galaxy views
        └── user_service.py    # API-key identity lookup
"""

__version__ = "0.1.0"
