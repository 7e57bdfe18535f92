from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser

from history_backup.errors import ConversionOverflow, UnsupportedSource
from history_backup.models import SourceFamily

# Seconds between 1970-01-01 and 2001-01-01 (Core Data / NSDate reference date).
NSDATE_OFFSET_SECONDS = 978_307_200
# Microseconds between 1601-01-01 and 1970-01-01 (WebKit / Windows FILETIME epoch).
WEBKIT_OFFSET_MICROS = 11_644_473_600_000_000

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

DAY_MS = 24 * 3_600_000
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def unixepoch_ms_to_nsdate(ms: int) -> float:
    return ms / 1000 - NSDATE_OFFSET_SECONDS


def nsdate_to_unixepoch_ms(native: float) -> int:
    # Safari rows go through PRTime (microseconds) first, then down to milliseconds.
    prtime = int((native + NSDATE_OFFSET_SECONDS) * 1_000_000)
    return _checked(prtime // 1000)


def unixepoch_ms_to_prtime(ms: int) -> int:
    return ms * 1000


def prtime_to_unixepoch_ms(native: int) -> int:
    return _checked(int(native) // 1000)


def unixepoch_ms_to_webkit(ms: int) -> int:
    return ms * 1000 + WEBKIT_OFFSET_MICROS


def webkit_to_unixepoch_ms(native: int) -> int:
    return _checked((int(native) - WEBKIT_OFFSET_MICROS) // 1000)


_TO_NATIVE = {
    SourceFamily.SAFARI: unixepoch_ms_to_nsdate,
    SourceFamily.FIREFOX: unixepoch_ms_to_prtime,
    SourceFamily.CHROME: unixepoch_ms_to_webkit,
}

_TO_CANONICAL = {
    SourceFamily.SAFARI: nsdate_to_unixepoch_ms,
    SourceFamily.FIREFOX: prtime_to_unixepoch_ms,
    SourceFamily.CHROME: webkit_to_unixepoch_ms,
}


def canonical_to_native(family: Any, ms: int) -> int | float:
    converter = _TO_NATIVE.get(_as_family(family))
    if converter is None:
        raise UnsupportedSource(f"No timestamp conversion for source family {family!r}")
    return converter(ms)


def native_to_canonical(family: Any, native: int | float) -> int:
    converter = _TO_CANONICAL.get(_as_family(family))
    if converter is None:
        raise UnsupportedSource(f"No timestamp conversion for source family {family!r}")
    return converter(native)


def _as_family(family: Any) -> SourceFamily | None:
    if isinstance(family, SourceFamily):
        return family
    try:
        return SourceFamily(family)
    except ValueError:
        return None


def _checked(ms: int) -> int:
    if ms < _INT64_MIN or ms > _INT64_MAX:
        raise ConversionOverflow(f"Timestamp {ms} ms does not fit in a signed 64-bit integer")
    return ms


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime_utc(value: Any) -> datetime | None:
    if value is None:
        return None

    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return to_utc(parser.parse(value))
        except (ValueError, TypeError, OverflowError):
            return None

    return None


def to_unixepoch_ms(value: datetime) -> int:
    return (to_utc(value) - _UNIX_EPOCH) // timedelta(milliseconds=1)


def tomorrow_midnight_ms(now: datetime | None = None) -> int:
    """Local midnight at the start of tomorrow, in canonical milliseconds."""
    current = (now or datetime.now()).astimezone()
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return int((midnight + timedelta(days=1)).timestamp() * 1000)


def full_time_range() -> tuple[int, int]:
    return 0, tomorrow_midnight_ms()


def ymd_midnight_ms(ymd: str) -> int:
    try:
        day = datetime.strptime(ymd, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError(f"not a %Y-%m-%d date: {ymd!r}") from exc
    # naive datetimes are interpreted in local time
    return int(day.timestamp() * 1000)


def format_ymd(ms: int) -> str:
    return datetime.fromtimestamp(ms // 1000).strftime("%Y-%m-%d")


def format_ymdhms(ms: int) -> str:
    return datetime.fromtimestamp(ms // 1000).strftime("%Y-%m-%d %H:%M:%S")
