from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a calendar date.

    - None / "" -> None
    - "YYYY-MM-DD" -> date
    - a full ISO-8601 datetime ("...T...", optional "Z") -> its UTC date
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    # Only extended YYYY-MM-DD; fromisoformat also takes "20270430" and "2027-W17-5"
    if not _ISO_DATE.match(s):
        raise ValueError(f"Not a YYYY-MM-DD date: {value!r}")

    if "T" not in s and " " not in s:
        if not _ISO_DATE.fullmatch(s):
            raise ValueError(f"Not a YYYY-MM-DD date: {value!r}")
        return date.fromisoformat(s)

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_iso_date(d: Optional[date]) -> Optional[str]:
    if d is None:
        return None
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()
