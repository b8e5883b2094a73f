"""
Clock Utilities
Naive-UTC storage convention and patient-timezone conversions
"""

import logging
from datetime import datetime, date, time, timezone, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "America/New_York"


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an injected clock value; naive input is taken to be UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime]) -> datetime:
    return to_naive_utc(now) if now is not None else utcnow()


def get_zone(name: Optional[str], default: Optional[str] = None) -> ZoneInfo:
    """Look up an IANA zone, falling back to the default zone for unknown names"""
    candidate = name or default or FALLBACK_TIMEZONE
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {candidate!r}, using {default or FALLBACK_TIMEZONE}")
        return ZoneInfo(default or FALLBACK_TIMEZONE)


def to_local(value: datetime, zone: ZoneInfo) -> datetime:
    """Convert a naive UTC value to an aware datetime in the given zone"""
    return value.replace(tzinfo=timezone.utc).astimezone(zone)


def local_to_utc(day: date, wall_time: time, zone: ZoneInfo) -> datetime:
    """Naive UTC instant of a wall-clock time on a local calendar day"""
    return datetime.combine(day, wall_time, tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) of a local calendar day"""
    start = local_to_utc(day, time(0, 0), zone)
    end = local_to_utc(day + timedelta(days=1), time(0, 0), zone)
    return start, end
