"""Conversions between wall-clock strings, weekdays and UTC instants.

Wall-clock values are handled as minutes since midnight. An end time of
``00:00`` (stored as ``23:59:59``) means the end of the civil day, i.e.
minute 1440. Instants are aware UTC datetimes inside the core and naive
UTC datetimes in the database.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from telehealth.scheduling.errors import InvalidRange
from telehealth.scheduling.intervals import Interval

MINUTES_PER_DAY = 24 * 60
END_OF_DAY_STORAGE = time(23, 59, 59)

_WALL_CLOCK_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidRange(f'Unknown timezone: {name}.') from exc


def parse_wall_clock(value: str | time, *, is_end: bool = False) -> int:
    if isinstance(value, time):
        hour, minute, second = value.hour, value.minute, value.second
    else:
        match = _WALL_CLOCK_PATTERN.match(value.strip())
        if match is None:
            raise InvalidRange(f'Invalid time format: {value!r}. Expected HH:MM.')
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            raise InvalidRange(f'Invalid time format: {value!r}. Expected HH:MM.')

    minutes = hour * 60 + minute
    if is_end and (minutes == 0 or (hour, minute, second) == (23, 59, 59)):
        return MINUTES_PER_DAY
    return minutes


def format_wall_clock(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def to_storage_time(minutes: int) -> time:
    if minutes >= MINUTES_PER_DAY:
        return END_OF_DAY_STORAGE
    return time(minutes // 60, minutes % 60)


def parse_window(start: str | time, end: str | time) -> Interval:
    window = Interval(parse_wall_clock(start), parse_wall_clock(end, is_end=True))
    if window.is_empty:
        raise InvalidRange()
    return window


def civil_weekday(day: date) -> int:
    """Weekday index with 0 = Sunday through 6 = Saturday."""
    return (day.weekday() + 1) % 7


def wall_clock_to_instant(day: date, minutes: int, zone: tzinfo) -> datetime:
    days, remainder = divmod(minutes, MINUTES_PER_DAY)
    local = datetime.combine(day + timedelta(days=days), time(remainder // 60, remainder % 60), tzinfo=zone)
    return local.astimezone(timezone.utc)


def window_to_instants(day: date, window: Interval, zone: tzinfo) -> Interval:
    return Interval(
        wall_clock_to_instant(day, window.start, zone),
        wall_clock_to_instant(day, window.end, zone),
    )


def day_bounds(day: date, zone: tzinfo) -> Interval:
    return window_to_instants(day, Interval(0, MINUTES_PER_DAY), zone)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def civil_date(instant: datetime, zone: tzinfo) -> date:
    return as_utc(instant).astimezone(zone).date()
