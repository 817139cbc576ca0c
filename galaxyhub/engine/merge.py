"""
galaxyhub.engine.merge — Atomic Upsert & Field Merge Policies
==============================================================

Every ingestion path funnels through :func:`atomic_upsert`:

1. Read the row for *key* with ``SELECT … FOR UPDATE`` (a row lock on
   PostgreSQL; SQLite serialises writers anyway).
2. Absent → build it with *create* and insert inside a SAVEPOINT.
3. If a concurrent submitter inserted the same key first, the unique
   constraint fires, the SAVEPOINT rolls back, and we re-read and take
   the merge path instead.
4. Present → hand the row to *merge*.

So a "not seen yet" answer from the dedup gateway that turns stale before
the insert is harmless: the upsert simply merges.

Field-level merging is explicit.  Each mutable column is paired with a
``merge(existing, incoming) -> result`` function and applied through
:func:`apply_fields`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from galaxyhub.errors import ConstraintViolation

logger = logging.getLogger(__name__)

M = TypeVar("M")

FieldMerge = Callable[[Any, Any], Any]


# ---------------------------------------------------------------------------
# Per-field merge functions
# ---------------------------------------------------------------------------
def overwrite(existing: Any, incoming: Any) -> Any:
    """Last write wins, even when the incoming value is ``None``."""
    return incoming


def coalesce(existing: Any, incoming: Any) -> Any:
    """Take the incoming value unless it is ``None``."""
    return existing if incoming is None else incoming


def keep_first(existing: Any, incoming: Any) -> Any:
    """Keep whatever was stored first; only fill a gap."""
    return incoming if existing is None else existing


def apply_fields(
    row: object,
    incoming: Mapping[str, Any],
    policies: Mapping[str, FieldMerge],
) -> list[str]:
    """Merge *incoming* into *row* column by column.

    Only fields named in *policies* are touched; anything else in
    *incoming* (identity fields, for instance) is ignored.  Returns the
    names of the columns whose value actually changed.
    """
    changed: list[str] = []
    for field, merge in policies.items():
        if field not in incoming:
            continue
        current = getattr(row, field)
        merged = merge(current, incoming[field])
        if merged != current:
            setattr(row, field, merged)
            changed.append(field)
    return changed


# ---------------------------------------------------------------------------
# Atomic upsert
# ---------------------------------------------------------------------------
def _locked_lookup(session: Session, model: type[M], key: Mapping[str, Any]) -> M | None:
    return session.scalar(
        select(model).filter_by(**key).with_for_update()
    )


def atomic_upsert(
    session: Session,
    model: type[M],
    key: Mapping[str, Any],
    create: Callable[[], M],
    merge: Callable[[M], None],
) -> tuple[M, bool]:
    """Insert-or-merge the row identified by *key*.

    Returns ``(row, created)``.  Raises :class:`ConstraintViolation` when
    the insert fails for a reason other than a concurrent duplicate (a
    dangling foreign key, typically).
    """
    row = _locked_lookup(session, model, key)
    if row is None:
        candidate = create()
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(candidate)
                session.flush()
            return candidate, True
        except IntegrityError as exc:
            # Either someone else inserted this key first, or a FK is dangling.
            row = _locked_lookup(session, model, key)
            if row is None:
                logger.debug("Upsert into %s failed: %s", model.__name__, exc.orig)
                raise ConstraintViolation(
                    f"Cannot insert {model.__name__} {dict(key)}: {exc.orig}"
                ) from exc
            logger.debug(
                "Concurrent insert on %s %s, merging instead", model.__name__, dict(key)
            )

    merge(row)
    try:
        session.flush()
    except IntegrityError as exc:
        raise ConstraintViolation(
            f"Cannot update {model.__name__} {dict(key)}: {exc.orig}"
        ) from exc
    return row, False
