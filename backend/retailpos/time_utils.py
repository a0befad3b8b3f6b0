from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .errors import ValidationError


def utcnow() -> datetime:
    """Naive UTC; every timestamp column stores this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any, *, field: str, required: bool = False) -> Optional[datetime]:
    """
    Client timestamp (report range bound, delivery date, DateTime column)
    to naive UTC.

    Accepts datetimes and ISO-8601 strings: "2026-03-01", "2026-03-01T09:30",
    "...Z" or "...+02:00". Offset-less values are taken as UTC. None and
    blank strings give None unless required is set; anything else that
    does not parse is a ValidationError naming the field.
    """
    if isinstance(value, datetime):
        return _as_utc_naive(value)

    text = value.strip() if isinstance(value, str) else value
    if text is None or text == "":
        if required:
            raise ValidationError(f"{field} must be an ISO-8601 datetime", details={"field": field})
        return None
    if not isinstance(text, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime", details={"field": field})

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc_naive(datetime.fromisoformat(text))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", details={"field": field, "value": value})


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Wire form of a stored timestamp: second precision with a trailing Z."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
