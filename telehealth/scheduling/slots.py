"""Open-slot computation for a professional on a civil date.

The generator returns free *ranges*, not pre-cut slots: each range is at
least as long as the requested service and callers chunk it into fixed
slots with ``chunk_slots`` when they want them.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from sqlalchemy.orm import Session

from telehealth.core.system_settings import SchedulingSettings
from telehealth.scheduling.availability_store import (
    Block,
    BookedRange,
    DateOverride,
    WeeklyRule,
    list_blocked_slots,
    list_booked_ranges,
    list_overrides,
    list_weekly_rules,
)
from telehealth.scheduling.errors import InvalidRange
from telehealth.scheduling.intervals import Interval, clip, merge, subtract
from telehealth.scheduling.timewindows import (
    as_utc,
    civil_weekday,
    day_bounds,
    format_wall_clock,
    window_to_instants,
)


def _validate_duration(duration_minutes: int) -> timedelta:
    if duration_minutes <= 0:
        raise InvalidRange('Service duration must be greater than zero minutes.')
    return timedelta(minutes=duration_minutes)


def build_open_intervals(
    day: date,
    duration_minutes: int,
    settings: SchedulingSettings,
    weekly_rules: Iterable[WeeklyRule],
    overrides: Iterable[DateOverride] = (),
    blocks: Iterable[Block] = (),
    booked: Iterable[BookedRange] = (),
    not_before: datetime | None = None,
) -> list[Interval]:
    minimum_length = _validate_duration(duration_minutes)
    zone = settings.zone
    weekday = civil_weekday(day)

    # Wall-clock stage, in minutes of the civil day.
    windows = merge(rule.window for rule in weekly_rules if rule.weekday == weekday)
    day_overrides = [override for override in overrides if override.for_date == day]
    windows = merge([*windows, *(o.window for o in day_overrides if o.is_available)])
    windows = subtract(windows, [o.window for o in day_overrides if not o.is_available])

    # Instant stage, in aware UTC datetimes.
    open_ranges = merge(window_to_instants(day, window, zone) for window in windows)
    open_ranges = subtract(open_ranges, [block.range for block in blocks])
    open_ranges = subtract(open_ranges, [booking.range for booking in booked])

    envelope = window_to_instants(day, settings.business_hours, zone)
    lower = envelope.start if not_before is None else max(envelope.start, as_utc(not_before))
    open_ranges = clip(open_ranges, lower, envelope.end)

    return [interval for interval in open_ranges if interval.length() >= minimum_length]


def compute_open_slots(
    db: Session,
    professional_id: int,
    day: date,
    duration_minutes: int,
    settings: SchedulingSettings,
    not_before: datetime | None = None,
) -> list[Interval]:
    bounds = day_bounds(day, settings.zone)

    return build_open_intervals(
        day,
        duration_minutes,
        settings,
        weekly_rules=list_weekly_rules(db, professional_id, civil_weekday(day)),
        overrides=list_overrides(db, professional_id, day),
        blocks=list_blocked_slots(db, professional_id, bounds),
        booked=list_booked_ranges(db, professional_id, bounds),
        not_before=not_before,
    )


def _first_aligned_start(start: datetime, step: timedelta, zone: tzinfo) -> datetime:
    # Same-zone aware subtraction is wall-clock difference.
    local = start.astimezone(zone)
    since_midnight = local - datetime.combine(local.date(), time(0), tzinfo=zone)
    remainder = since_midnight % step
    if not remainder:
        return start
    return start + (step - remainder)


def chunk_slots(
    intervals: Iterable[Interval],
    duration_minutes: int,
    step_minutes: int | None = None,
    zone: tzinfo = timezone.utc,
) -> list[Interval]:
    """Cut free ranges into fixed-length slots.

    Slot starts sit on a ``step_minutes`` grid counted from civil midnight in
    ``zone``, so hourly slots start on the hour even when a range begins at
    an arbitrary instant.
    """
    length = _validate_duration(duration_minutes)
    step = _validate_duration(step_minutes or duration_minutes)

    slots: list[Interval] = []
    for interval in intervals:
        current = _first_aligned_start(interval.start, step, zone)
        while current + length <= interval.end:
            slots.append(Interval(current, current + length))
            current += step
    return slots


def available_dates(
    db: Session,
    professional_id: int,
    start: date,
    days: int,
    duration_minutes: int,
    settings: SchedulingSettings,
    not_before: datetime | None = None,
) -> list[date]:
    dates: list[date] = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        open_ranges = compute_open_slots(db, professional_id, day, duration_minutes, settings, not_before)
        if chunk_slots(open_ranges, duration_minutes, zone=settings.zone):
            dates.append(day)
    return dates


def schedule_hour_options(settings: SchedulingSettings) -> list[str]:
    """Hourly wall-clock options from the configured start to end hour, inclusive."""
    business_hours = settings.business_hours
    return [format_wall_clock(minutes) for minutes in range(business_hours.start, business_hours.end + 1, 60)]
