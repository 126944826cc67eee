"""Utilities for normalising triage activity timestamps to UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

Number = Union[int, float]
Scalar = Union[Number, str, datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def from_epoch_seconds(value: Optional[Scalar]) -> Optional[datetime]:
    """Convert ``value`` representing epoch seconds to a UTC ``datetime``."""

    if value in (None, "", b""):
        return None
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def coerce_timestamp(value: Optional[Scalar]) -> Optional[datetime]:
    """Return ``value`` as a UTC ``datetime``.

    Accepts aware or naive datetimes, epoch seconds (numbers or numeric
    strings) and ISO-8601 strings, including the ``Z`` suffix emitted by
    JavaScript clients.  Unparseable input yields ``None``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return from_epoch_seconds(value)
    text = str(value).strip()
    if not text:
        return None
    epoch = from_epoch_seconds(text)
    if epoch is not None:
        return epoch
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


__all__ = [
    "utc_now",
    "ensure_utc",
    "from_epoch_seconds",
    "coerce_timestamp",
]
