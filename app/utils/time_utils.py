"""Clock and timezone helpers shared by the fulfillment services"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)

MAX_UTC_OFFSET_MINUTES = 14 * 60


def utcnow() -> datetime:
    """Current server time (UTC, tz-aware)"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a stored timestamp to tz-aware UTC.

    Some backends (SQLite) hand back naive datetimes even for
    ``DateTime(timezone=True)`` columns; everything is written in UTC, so a
    naive value is UTC by construction.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fixed_offset_zone(offset_minutes: int) -> tzinfo:
    """Fixed-offset tzinfo for an offset in minutes east of UTC"""
    if abs(offset_minutes) > MAX_UTC_OFFSET_MINUTES:
        raise ValueError(f"UTC offset out of range: {offset_minutes} minutes")
    return timezone(timedelta(minutes=offset_minutes))


def resolve_zone(tz_name: Optional[str], default_name: str = "UTC") -> tzinfo:
    """Supplier's IANA zone, else the configured default zone, else UTC"""
    for name in (tz_name, default_name):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {name!r}")
    return timezone.utc
