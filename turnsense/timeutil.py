"""Timestamp helpers shared by every capture path.

All helpers accept an optional ``now`` so callers (and tests) can pin the clock.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Los_Angeles"


def _utc(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp, e.g. 2026-02-02T14:30:00.000Z"""
    ts = _utc(now)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def local_timestamp(tz: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> str:
    """Wall-clock timestamp in ``tz``, e.g. 2026-02-02T06:30:00"""
    return _utc(now).astimezone(ZoneInfo(tz)).strftime("%Y-%m-%dT%H:%M:%S")


def local_date(tz: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> str:
    return local_timestamp(tz, now)[:10]


def year_month(now: Optional[datetime] = None) -> str:
    ts = now if now is not None else datetime.now()
    return ts.strftime("%Y-%m")


def filename_timestamp(now: Optional[datetime] = None) -> str:
    """Filename-safe UTC timestamp, e.g. 2026-02-02-143000"""
    return _utc(now).strftime("%Y-%m-%d-%H%M%S")


def relative_time(then: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """Human readable age such as '2 hours ago'."""
    if isinstance(then, str):
        then = datetime.fromisoformat(then.replace("Z", "+00:00"))
    diff_s = (_utc(now) - _utc(then)).total_seconds()
    mins = int(diff_s // 60)
    hours = mins // 60
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if mins > 0:
        return f"{mins} minute{'s' if mins > 1 else ''} ago"
    return "just now"
