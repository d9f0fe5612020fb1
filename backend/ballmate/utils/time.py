from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from ..config import get_settings


@lru_cache
def venue_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().venue_timezone)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_aware(dt: datetime, tz: tzinfo = timezone.utc) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(tz)


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
