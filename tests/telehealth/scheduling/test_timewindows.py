from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from telehealth.scheduling.errors import InvalidRange
from telehealth.scheduling.intervals import Interval
from telehealth.scheduling.timewindows import (
    MINUTES_PER_DAY,
    as_utc,
    civil_date,
    civil_weekday,
    day_bounds,
    format_wall_clock,
    parse_wall_clock,
    parse_window,
    to_storage,
    to_storage_time,
    wall_clock_to_instant,
    window_to_instants,
)

NEW_YORK = ZoneInfo('America/New_York')


@pytest.mark.parametrize(
    ('value', 'is_end', 'expected'),
    [
        ('08:00', False, 480),
        (' 9:30 ', False, 570),
        ('00:00', False, 0),
        ('00:00', True, MINUTES_PER_DAY),
        ('23:59:59', True, MINUTES_PER_DAY),
        (time(23, 59, 59), True, MINUTES_PER_DAY),
        (time(18, 0), True, 1080),
    ],
)
def test_parse_wall_clock(value, is_end: bool, expected: int) -> None:
    assert parse_wall_clock(value, is_end=is_end) == expected


@pytest.mark.parametrize('value', ['8am', '24:00', '12:60', ''])
def test_parse_wall_clock_rejects_malformed_values(value: str) -> None:
    with pytest.raises(InvalidRange):
        parse_wall_clock(value)


def test_parse_window_rejects_inverted_range() -> None:
    with pytest.raises(InvalidRange):
        parse_window('18:00', '08:00')


def test_parse_window_accepts_midnight_end() -> None:
    assert parse_window('22:00', '00:00') == Interval(1320, MINUTES_PER_DAY)


def test_midnight_end_round_trips_through_storage() -> None:
    assert to_storage_time(MINUTES_PER_DAY) == time(23, 59, 59)
    assert format_wall_clock(MINUTES_PER_DAY) == '00:00'


def test_civil_weekday_starts_on_sunday() -> None:
    assert civil_weekday(date(2026, 1, 4)) == 0
    assert civil_weekday(date(2026, 1, 5)) == 1
    assert civil_weekday(date(2026, 1, 10)) == 6


def test_wall_clock_to_instant_follows_dst_rules() -> None:
    before_switch = wall_clock_to_instant(date(2026, 3, 7), 8 * 60, NEW_YORK)
    after_switch = wall_clock_to_instant(date(2026, 3, 8), 8 * 60, NEW_YORK)

    assert before_switch == datetime(2026, 3, 7, 13, 0, tzinfo=timezone.utc)
    assert after_switch == datetime(2026, 3, 8, 12, 0, tzinfo=timezone.utc)


def test_day_bounds_on_dst_day_is_23_hours() -> None:
    bounds = day_bounds(date(2026, 3, 8), NEW_YORK)

    assert bounds.length().total_seconds() == 23 * 3600


def test_window_to_instants_resolves_midnight_to_next_day() -> None:
    window = window_to_instants(date(2026, 1, 5), Interval(1320, MINUTES_PER_DAY), ZoneInfo('UTC'))

    assert window.end == datetime(2026, 1, 6, 0, 0, tzinfo=timezone.utc)


def test_storage_helpers_normalize_to_naive_utc() -> None:
    local = datetime(2026, 1, 5, 10, 0, tzinfo=NEW_YORK)

    assert to_storage(local) == datetime(2026, 1, 5, 15, 0)
    assert as_utc(datetime(2026, 1, 5, 15, 0)) == datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)


def test_civil_date_uses_zone() -> None:
    instant = datetime(2026, 1, 6, 2, 0, tzinfo=timezone.utc)

    assert civil_date(instant, NEW_YORK) == date(2026, 1, 5)
