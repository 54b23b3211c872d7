"""Clock abstraction and datetime helpers.

Time-sensitive validation (e.g. "voting must start in the future") reads the
current instant through a ``Clock`` so the same rule gives a fresh answer at
step exit and again at submission, and so tests can pin time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Protocol, runtime_checkable
from zoneinfo import ZoneInfo


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant (timezone-aware, UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to a given instant; can be moved forward explicitly."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        self._instant = self._instant + timedelta(**kwargs)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def parse_datetime(value: Any, tz: tzinfo = timezone.utc) -> datetime:
    """Parse an ISO-8601 or datetime-local string into an aware datetime.

    Naive values (``2024-05-01T18:30`` as produced by datetime-local inputs)
    are interpreted in ``tz``.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a datetime: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def to_iso_utc(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.sssZ`` in UTC."""
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def to_datetime_local(value: Any, tz: tzinfo = timezone.utc) -> str:
    """Format a timestamp for a datetime-local input (minute precision)."""
    if value is None or value == "":
        return ""
    dt = parse_datetime(value, tz).astimezone(tz)
    return dt.strftime("%Y-%m-%dT%H:%M")
