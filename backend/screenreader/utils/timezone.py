import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from screenreader.core.settings import get_settings

logger = logging.getLogger(__name__)


def get_reader_timezone(name: Optional[str] = None) -> ZoneInfo:
    """
    Returns the timezone the host device displays its clock in.
    Graph time labels are wall-clock times in this zone.
    """
    name = name or get_settings().reader.timezone
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {name!r}, falling back to UTC")
        return ZoneInfo("UTC")


def to_local(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Converts a datetime to the reader timezone.
    Assumes naive datetimes are UTC.
    """
    if tz is None:
        tz = get_reader_timezone()

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(tz)


def to_utc_iso(dt: datetime) -> str:
    """
    Nightscout style timestamp: 2025-01-10T12:00:00.000Z
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
