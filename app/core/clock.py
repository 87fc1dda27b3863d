"""Time helpers. Stored timestamps are naive UTC truncated to milliseconds (MongoDB precision)."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.config import get_settings


def truncate_ms(dt: datetime) -> datetime:
    return dt.replace(microsecond=dt.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    return truncate_ms(datetime.utcnow())


def as_utc_naive(dt: datetime) -> datetime:
    """Normalise a caller-supplied timestamp to the stored representation."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return truncate_ms(dt)


def local_now() -> datetime:
    """Current time in the business timezone (aware)."""
    tz = ZoneInfo(get_settings().business_timezone)
    return utcnow().replace(tzinfo=timezone.utc).astimezone(tz)


def js_weekday(dt: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


ONE_MS = timedelta(milliseconds=1)
