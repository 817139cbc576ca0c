"""
galaxyhub.errors — Error Kinds Raised by the Ingestion Engine
==============================================================

All errors surface synchronously to the immediate caller and are never
retried here.  "Already exists" on a planet or report identity is not an
error: that is the normal merge branch of an upsert.
"""

from __future__ import annotations


class HubError(Exception):
    """Base class for every galaxyhub error."""


class NotFound(HubError):
    """A lookup by key (API key, alliance, ...) found nothing."""


class ConflictViolation(HubError):
    """An append-only fact already exists for this identity."""


class ConstraintViolation(HubError):
    """A foreign-key reference points at a nonexistent player or alliance."""


class InvalidInput(HubError):
    """Malformed coordinates, unknown planet type, bad category, ..."""
