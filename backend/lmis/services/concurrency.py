# Overview: Service-layer helpers for locking and conflict detection.

from __future__ import annotations

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Box rows additionally carry a version column, so a lost race still
    surfaces as StaleDataError on flush.
    """
    return query.with_for_update()


def flush_or_conflict(message: str = "Boxes were modified by a concurrent request; resubmit") -> None:
    """
    Flush pending changes, converting optimistic-lock failures to ConflictError.

    No retry: the caller rolls back and the client resubmits.
    """
    try:
        db.session.flush()
    except StaleDataError as exc:
        raise ConflictError(message) from exc
