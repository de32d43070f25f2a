from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from lmis.time_utils import parse_iso_date


"""
LMIS error taxonomy (authoritative)

- Every error carries a human-readable message and an HTTP status.
- `details` holds structured lists (missing, invalid, wrongDestination) for
  bulk diagnostics; it never signals partial success.
- Nothing here is retried automatically; callers resubmit corrected requests.
"""


class LmisError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"message": self.message, "error": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LmisError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(LmisError):
    """Referenced facility/order/box does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(LmisError):
    """Actor's role or facility does not permit the operation."""
    status_code = 403
    code = "FORBIDDEN"


class PreconditionError(LmisError):
    """Box exists but is in the wrong state/location/destination."""
    status_code = 400
    code = "PRECONDITION_FAILED"


class ConflictError(LmisError):
    """409-level business rule conflict (e.g., duplicate facility code)."""
    status_code = 409
    code = "CONFLICT"


def require_fields(payload: dict | None, *fields: str) -> dict:
    """Return the payload, raising ValidationError listing every missing/blank field."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = []
    for field in fields:
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )
    return payload


def parse_positive_int(value: Any, field: str = "quantity", maximum: int | None = None) -> int:
    """
    Strict positive integer coercion.

    Accepts ints and ASCII digit strings (optional leading "+"). Rejects
    booleans, floats, decimals, scientific notation ("1e3"), digit
    separators ("1_000") and non-ASCII numerals.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a positive integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        # ASCII digits only: int() would also take "1_000" and non-Latin numerals
        digits = stripped[1:] if stripped.startswith("+") else stripped
        if not (digits.isascii() and digits.isdigit()):
            raise ValidationError(f"{field} must be a positive integer")
        try:
            parsed = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be a positive integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be a positive integer")

    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return parsed


def parse_calendar_date(value: Any, field: str = "expiryDate") -> date:
    """Parse a YYYY-MM-DD (or ISO datetime) value into a date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD)")
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD)")
    return parsed


def normalize_box_uids(box_uids: Any, field: str = "boxUids") -> list[str]:
    """
    Trim, drop blanks and de-duplicate box UIDs, keeping first-seen order.

    An empty result is a ValidationError: every bulk operation needs at
    least one box.
    """
    if not isinstance(box_uids, (list, tuple)):
        raise ValidationError(f"{field} must be a non-empty array")

    seen: set[str] = set()
    uids: list[str] = []
    for raw in box_uids:
        if raw is None:
            continue
        uid = str(raw).strip()
        if not uid or uid in seen:
            continue
        seen.add(uid)
        uids.append(uid)

    if not uids:
        raise ValidationError(f"{field} must be a non-empty array")
    return uids


def clean_note(note: Any, max_length: int = 255) -> str | None:
    if note is None:
        return None
    s = str(note).strip()
    if not s:
        return None
    if len(s) > max_length:
        raise ValidationError(f"note exceeds max length {max_length}")
    return s


def clean_codes(codes: Iterable[Any] | None, field: str) -> list[str]:
    """Normalize a list of facility codes (trimmed, de-duplicated)."""
    if not isinstance(codes, (list, tuple)):
        raise ValidationError(f"{field} must be a non-empty array")
    cleaned = list(dict.fromkeys(str(c).strip() for c in codes if c is not None and str(c).strip()))
    if not cleaned:
        raise ValidationError(f"{field} must be a non-empty array")
    return cleaned
