"""
galaxyhub.services.dedup_service — Message Deduplication Gateway
=================================================================

Clients tag every submission with the game's message id.  Before uploading
a batch they ask which ids the hub already knows and skip those.

The check is an optimisation, not a guarantee: another scout may land the
same id between the check and the upload.  That is fine because every
ingestion path is an idempotent upsert.

Ids are opaque tokens (ints or strings); they are compared in their
normalised string form and handed back in the caller's own type.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, select, text
from sqlalchemy.orm import Session

from galaxyhub.database.engine import get_session
from galaxyhub.database.models import Message
from galaxyhub.engine.keys import normalize_external_id

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well below driver parameter limits.
_CHUNK_SIZE = 500

_INSERT_IGNORE = text("""
    INSERT INTO messages (external_id)
    VALUES (:external_id)
    ON CONFLICT (external_id) DO NOTHING
""")


def _token_map(ids: Iterable[str | int]) -> dict[str, list[str | int]]:
    """Map normalised token → every distinct original form, in input order."""
    tokens: dict[str, list[str | int]] = {}
    for raw in ids:
        forms = tokens.setdefault(normalize_external_id(raw), [])
        if not any(type(f) is type(raw) and f == raw for f in forms):
            forms.append(raw)
    return tokens


def known_tokens(session: Session, tokens: Iterable[str]) -> set[str]:
    """Subset of *tokens* already present in the ledger."""
    pending = list(tokens)
    found: set[str] = set()
    for start in range(0, len(pending), _CHUNK_SIZE):
        chunk = pending[start:start + _CHUNK_SIZE]
        found.update(
            session.scalars(
                select(Message.external_id).where(Message.external_id.in_(chunk))
            ).all()
        )
    return found


def record_in_ledger(session: Session, tokens: Iterable[str]) -> None:
    """Insert-or-ignore *tokens* into the ledger within *session*."""
    params = [{"external_id": token} for token in tokens]
    if params:
        session.execute(_INSERT_IGNORE, params)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def check_duplicate_message_ids(engine: Engine, ids: Iterable[str | int]) -> set[str | int]:
    """Return the subset of *ids* the hub has already seen.

    Pure query: nothing is written.  An empty input yields an empty set.
    An id given in several forms (``5`` and ``"5"``) is returned in all of
    them.
    """
    tokens = _token_map(ids)
    if not tokens:
        return set()

    with get_session(engine) as session:
        found = known_tokens(session, tokens)

    logger.debug("Dedup check: %d ids, %d already known", len(tokens), len(found))
    return {form for token in found for form in tokens[token]}


def filter_new_message_ids(engine: Engine, ids: Iterable[str | int]) -> list[str | int]:
    """Return the ids not seen yet, in input order.

    Repeats are dropped; when an id arrives as both ``5`` and ``"5"`` the
    first form is kept.
    """
    tokens = _token_map(ids)
    if not tokens:
        return []
    with get_session(engine) as session:
        found = known_tokens(session, tokens)
    return [forms[0] for token, forms in tokens.items() if token not in found]


def record_message_ids(engine: Engine, ids: Iterable[str | int]) -> int:
    """Register *ids* as processed.  Returns how many were new.

    Used for messages that aren't stored as reports (trade offers, alliance
    circulars) which a client wants skipped next time.  Report upserts
    record their own ids.
    """
    tokens = _token_map(ids)
    if not tokens:
        return 0

    with get_session(engine) as session:
        found = known_tokens(session, tokens)
        new = [token for token in tokens if token not in found]
        record_in_ledger(session, new)

    logger.debug("Recorded %d new message ids (%d submitted)", len(new), len(tokens))
    return len(new)
