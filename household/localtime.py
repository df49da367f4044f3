"""
household/localtime.py -- "Today" in a household's own timezone.

Dashboards filter by the household's local calendar day, not the server's.
A day in America/Los_Angeles starts at 07:00 or 08:00 UTC depending on DST,
so the bounds are computed per request from the IANA zone name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class LocalDay:
    date: str  # YYYY-MM-DD in the household's zone
    start_utc: str  # ISO 8601, inclusive
    end_utc: str  # ISO 8601, exclusive


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_today(timezone_name: str | None, now: datetime | None = None) -> LocalDay:
    """Return the household's current local date and its UTC bounds."""
    zone = _zone(timezone_name)
    now = now or datetime.now(timezone.utc)
    day: date = now.astimezone(zone).date()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return LocalDay(
        date=day.isoformat(),
        start_utc=start.astimezone(timezone.utc).isoformat(timespec="seconds"),
        end_utc=end.astimezone(timezone.utc).isoformat(timespec="seconds"),
    )


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
