"""
Reporting Timezone Helpers

Calendar days in every report are defined by one fixed UTC offset, never
by the server's local zone. Stored timestamps are naive UTC; these
helpers convert between the two explicitly so that non-integer-hour
offsets such as +05:30 land checks in the right day and hour.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Tuple

from exceptions.validation import InvalidTimezoneError


TIMEZONE_ALIASES: Dict[str, Tuple[int, str]] = {
    "UTC": (0, "UTC"),
    "GMT": (0, "UTC"),
    "Z": (0, "UTC"),
    "IST": (330, "IST"),
    "ASIA/KOLKATA": (330, "IST"),
    "ASIA/CALCUTTA": (330, "IST"),
}

_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?([+-])(\d{1,2}):?(\d{2})$")


def parse_utc_offset(value: str) -> timezone:
    """
    Turn an alias (``IST``) or an offset (``+05:30``, ``-0400``,
    ``UTC+05:30``) into a fixed-offset timezone.

    Raises:
        InvalidTimezoneError: For anything else, including DST zones.
    """
    if not value or not value.strip():
        raise InvalidTimezoneError(value=value)

    key = value.strip().upper()
    if key in TIMEZONE_ALIASES:
        minutes, label = TIMEZONE_ALIASES[key]
        return timezone(timedelta(minutes=minutes), label)

    match = _OFFSET_RE.match(key)
    if not match:
        raise InvalidTimezoneError(value=value)

    sign, hours, mins = match.groups()
    hours, mins = int(hours), int(mins)
    if hours > 14 or mins >= 60:
        raise InvalidTimezoneError(value=value)

    minutes = hours * 60 + mins
    if sign == "-":
        minutes = -minutes

    return timezone(timedelta(minutes=minutes), _offset_name(minutes))


def _offset_name(minutes: int) -> str:
    if minutes == 0:
        return "UTC"
    sign = "+" if minutes > 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"UTC{sign}{hours:02d}:{mins:02d}"


def timezone_label(tz: timezone) -> str:
    """Short label used in alert text and report payloads."""
    return tz.tzname(None) or _offset_name(int(tz.utcoffset(None).total_seconds() // 60))


def day_window(day: date, tz: timezone) -> Tuple[datetime, datetime]:
    """
    UTC bounds of a calendar day in ``tz``.

    Returns a half-open ``[start, end)`` pair of naive UTC datetimes,
    ``end`` being exactly 24 hours after ``start``.
    """
    local_midnight = datetime.combine(day, time.min, tzinfo=tz)
    start = local_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    return start, start + timedelta(days=1)


def range_window(start_day: date, end_day: date, tz: timezone) -> Tuple[datetime, datetime]:
    """UTC bounds covering every calendar day from start_day to end_day inclusive."""
    start, _ = day_window(start_day, tz)
    _, end = day_window(end_day, tz)
    return start, end


def to_local(value: datetime, tz: timezone) -> datetime:
    """Convert a naive UTC timestamp to an aware datetime in ``tz``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def local_date(value: datetime, tz: timezone) -> date:
    """Calendar day of a naive UTC timestamp in ``tz``."""
    return to_local(value, tz).date()


def today(tz: timezone) -> date:
    """Current calendar day in ``tz``."""
    return datetime.now(timezone.utc).astimezone(tz).date()


def isoformat_utc(value: datetime) -> str:
    """Millisecond-precision ISO-8601 string with a ``Z`` suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
