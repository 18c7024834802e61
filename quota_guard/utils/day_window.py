"""Calendar-day arithmetic and key layout for daily usage counters."""

import math
import time as _time
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from quota_guard.models import CounterDimension

Clock = Callable[[], datetime]


class SystemLocalTimezone(tzinfo):
    """
    The host's local zone with its daylight saving rules.

    Offsets are looked up per datetime through the C library, so a midnight
    on the far side of a DST change gets that day's offset rather than the
    offset in force when the clock was read.
    """

    def utcoffset(self, dt: Optional[datetime]) -> timedelta:
        return timedelta(seconds=self._local(dt).tm_gmtoff)

    def dst(self, dt: Optional[datetime]) -> timedelta:
        return timedelta(hours=1) if self._local(dt).tm_isdst > 0 else timedelta(0)

    def tzname(self, dt: Optional[datetime]) -> str:
        return self._local(dt).tm_zone

    def fromutc(self, dt: datetime) -> datetime:
        stamp = (dt.replace(tzinfo=None) - datetime(1970, 1, 1)).total_seconds()
        local = _time.localtime(stamp)
        return datetime(*local[:6], dt.microsecond, tzinfo=self)

    @staticmethod
    def _local(dt: Optional[datetime]) -> _time.struct_time:
        if dt is None:
            return _time.localtime()
        stamp = _time.mktime(
            (dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.weekday(), 0, -1)
        )
        return _time.localtime(stamp)

    def __repr__(self) -> str:
        return "SystemLocalTimezone()"


def local_clock(timezone: Optional[str] = None) -> Clock:
    """
    Build a clock returning timezone-aware "now".

    Args:
        timezone: IANA zone name. When empty, the server's local zone is used.
    """
    zone: tzinfo = ZoneInfo(timezone) if timezone else SystemLocalTimezone()

    def _now() -> datetime:
        return datetime.now(zone)

    return _now


def day_key(now: datetime) -> str:
    return now.date().isoformat()


def next_midnight(now: datetime) -> datetime:
    """Return the start of the next calendar day in ``now``'s zone."""
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


def seconds_until_midnight(now: datetime) -> int:
    # never 0: EXPIRE with 0 deletes the key on the spot
    return max(1, math.ceil(next_midnight(now).timestamp() - now.timestamp()))


def counter_key(
    prefix: str,
    dimension: CounterDimension,
    fingerprint: str,
    address: str,
    day: str,
) -> str:
    """
    Build the store key of a daily usage counter.

    Both identities are client controlled and may contain ``:`` (IPv6), so the
    pair key length-prefixes the fingerprint to keep distinct pairs apart.
    """
    if dimension is CounterDimension.FINGERPRINT:
        identity = fingerprint
    elif dimension is CounterDimension.ADDRESS:
        identity = address
    else:
        identity = f"{len(fingerprint)}:{fingerprint}:{address}"
    return f"{prefix}:count:{dimension.value}:{identity}:{day}"
