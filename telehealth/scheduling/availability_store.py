"""Accessors for a professional's availability collections.

Rows are mapped into frozen records at this boundary so the slot
generator never handles ORM objects. Every database failure surfaces as
``UpstreamUnavailable``.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core.system_settings import SchedulingSettings
from telehealth.models.appointment import Appointment
from telehealth.models.availability import AvailabilityOverride, AvailabilityRule, BlockedSlot
from telehealth.scheduling.errors import InvalidRange, UpstreamUnavailable
from telehealth.scheduling.intervals import Interval, contains, overlaps
from telehealth.scheduling.state_machine import AppointmentStatus
from telehealth.scheduling.timewindows import (
    as_utc,
    format_wall_clock,
    parse_wall_clock,
    parse_window,
    to_storage,
    to_storage_time,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeeklyRule:
    id: int | None
    professional_id: int
    weekday: int
    window: Interval

    @classmethod
    def from_row(cls, row: AvailabilityRule) -> 'WeeklyRule':
        return cls(
            id=row.id,
            professional_id=row.professional_id,
            weekday=row.weekday,
            window=Interval(parse_wall_clock(row.start_time), parse_wall_clock(row.end_time, is_end=True)),
        )

    @property
    def start_time(self) -> str:
        return format_wall_clock(self.window.start)

    @property
    def end_time(self) -> str:
        return format_wall_clock(self.window.end)


@dataclass(frozen=True)
class DateOverride:
    id: int | None
    professional_id: int
    for_date: date
    window: Interval
    is_available: bool

    @classmethod
    def from_row(cls, row: AvailabilityOverride) -> 'DateOverride':
        return cls(
            id=row.id,
            professional_id=row.professional_id,
            for_date=row.for_date,
            window=Interval(parse_wall_clock(row.start_time), parse_wall_clock(row.end_time, is_end=True)),
            is_available=bool(row.is_available),
        )

    @property
    def start_time(self) -> str:
        return format_wall_clock(self.window.start)

    @property
    def end_time(self) -> str:
        return format_wall_clock(self.window.end)


@dataclass(frozen=True)
class Block:
    id: int | None
    professional_id: int
    range: Interval
    reason: str | None = None

    @classmethod
    def from_row(cls, row: BlockedSlot) -> 'Block':
        return cls(
            id=row.id,
            professional_id=row.professional_id,
            range=Interval(as_utc(row.starts_at), as_utc(row.ends_at)),
            reason=row.reason,
        )

    @property
    def starts_at(self) -> datetime:
        return self.range.start

    @property
    def ends_at(self) -> datetime:
        return self.range.end


@dataclass(frozen=True)
class BookedRange:
    appointment_id: str
    range: Interval

    @classmethod
    def from_row(cls, row: Appointment) -> 'BookedRange':
        return cls(appointment_id=row.id, range=Interval(as_utc(row.scheduled_at), as_utc(row.ends_at)))


@dataclass(frozen=True)
class AvailabilityView:
    weekly_rules: list[WeeklyRule]
    overrides: list[DateOverride]
    blocked_slots: list[Block]


@contextmanager
def translate_store_errors(db: Session, rollback: bool = False):
    try:
        yield
    except SQLAlchemyError as exc:
        if rollback:
            db.rollback()
        raise UpstreamUnavailable() from exc


def list_weekly_rules(db: Session, professional_id: int, weekday: int | None = None) -> list[WeeklyRule]:
    with translate_store_errors(db):
        query = db.query(AvailabilityRule).filter(AvailabilityRule.professional_id == professional_id)
        if weekday is not None:
            query = query.filter(AvailabilityRule.weekday == weekday)
        rows = query.order_by(AvailabilityRule.weekday.asc(), AvailabilityRule.start_time.asc()).all()
    return [WeeklyRule.from_row(row) for row in rows]


def list_overrides(db: Session, professional_id: int, for_date: date | None = None) -> list[DateOverride]:
    with translate_store_errors(db):
        query = db.query(AvailabilityOverride).filter(AvailabilityOverride.professional_id == professional_id)
        if for_date is not None:
            query = query.filter(AvailabilityOverride.for_date == for_date)
        rows = query.order_by(AvailabilityOverride.for_date.asc(), AvailabilityOverride.start_time.asc()).all()
    return [DateOverride.from_row(row) for row in rows]


def list_blocked_slots(db: Session, professional_id: int, within: Interval | None = None) -> list[Block]:
    with translate_store_errors(db):
        query = db.query(BlockedSlot).filter(BlockedSlot.professional_id == professional_id)
        if within is not None:
            query = query.filter(
                BlockedSlot.starts_at < to_storage(within.end),
                BlockedSlot.ends_at > to_storage(within.start),
            )
        rows = query.order_by(BlockedSlot.starts_at.asc()).all()
    return [Block.from_row(row) for row in rows]


def list_booked_ranges(
    db: Session,
    professional_id: int,
    within: Interval,
) -> list[BookedRange]:
    """Non-cancelled appointments of the professional intersecting ``within``."""
    with translate_store_errors(db):
        query = db.query(Appointment).filter(
            Appointment.professional_id == professional_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.scheduled_at < to_storage(within.end),
            Appointment.ends_at > to_storage(within.start),
        )
        rows = query.order_by(Appointment.scheduled_at.asc()).all()
    return [BookedRange.from_row(row) for row in rows]


def get_availability_view(db: Session, professional_id: int) -> AvailabilityView:
    return AvailabilityView(
        weekly_rules=list_weekly_rules(db, professional_id),
        overrides=list_overrides(db, professional_id),
        blocked_slots=list_blocked_slots(db, professional_id),
    )


def validate_schedule_window(start: str | time, end: str | time, settings: SchedulingSettings) -> Interval:
    window = parse_window(start, end)

    if window.start % 60 or window.end % 60:
        raise InvalidRange('Times must be on whole hours.')

    business_hours = settings.business_hours
    if not contains(business_hours, window):
        raise InvalidRange(
            f'Times must be between {settings.start_hour} and {format_wall_clock(business_hours.end)}.'
        )

    return window


def _validate_weekday(weekday: int) -> None:
    if not 0 <= weekday <= 6:
        raise InvalidRange('Weekday must be between 0 (Sunday) and 6 (Saturday).')


def _ensure_no_rule_overlap(
    db: Session,
    professional_id: int,
    weekday: int,
    window: Interval,
    exclude_rule_id: int | None = None,
) -> None:
    for rule in list_weekly_rules(db, professional_id, weekday):
        if rule.id != exclude_rule_id and overlaps(rule.window, window):
            raise InvalidRange(
                f'The window overlaps an existing rule ({rule.start_time} - {rule.end_time}).'
            )


def create_weekly_rule(
    db: Session,
    professional_id: int,
    weekday: int,
    start: str | time,
    end: str | time,
    settings: SchedulingSettings,
) -> WeeklyRule:
    _validate_weekday(weekday)
    window = validate_schedule_window(start, end, settings)
    _ensure_no_rule_overlap(db, professional_id, weekday, window)

    with translate_store_errors(db, rollback=True):
        row = AvailabilityRule(
            professional_id=professional_id,
            weekday=weekday,
            start_time=to_storage_time(window.start),
            end_time=to_storage_time(window.end),
        )
        db.add(row)
        db.commit()
        db.refresh(row)

    logger.info('Weekly rule %s created for professional %s', row.id, professional_id)
    return WeeklyRule.from_row(row)


def update_weekly_rule(
    db: Session,
    professional_id: int,
    rule_id: int,
    settings: SchedulingSettings,
    weekday: int | None = None,
    start: str | time | None = None,
    end: str | time | None = None,
) -> WeeklyRule | None:
    with translate_store_errors(db):
        row = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.professional_id == professional_id,
        ).first()
    if row is None:
        return None

    current = WeeklyRule.from_row(row)
    new_weekday = current.weekday if weekday is None else weekday
    _validate_weekday(new_weekday)
    window = validate_schedule_window(
        current.start_time if start is None else start,
        current.end_time if end is None else end,
        settings,
    )
    _ensure_no_rule_overlap(db, professional_id, new_weekday, window, exclude_rule_id=rule_id)

    with translate_store_errors(db, rollback=True):
        row.weekday = new_weekday
        row.start_time = to_storage_time(window.start)
        row.end_time = to_storage_time(window.end)
        db.commit()
        db.refresh(row)

    return WeeklyRule.from_row(row)


def delete_weekly_rule(db: Session, professional_id: int, rule_id: int) -> bool:
    with translate_store_errors(db, rollback=True):
        row = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.professional_id == professional_id,
        ).first()
        if row is None:
            return False
        db.delete(row)
        db.commit()
    return True


def create_override(
    db: Session,
    professional_id: int,
    for_date: date,
    start: str | time,
    end: str | time,
    is_available: bool,
    settings: SchedulingSettings,
) -> DateOverride:
    window = validate_schedule_window(start, end, settings)

    with translate_store_errors(db, rollback=True):
        row = AvailabilityOverride(
            professional_id=professional_id,
            for_date=for_date,
            start_time=to_storage_time(window.start),
            end_time=to_storage_time(window.end),
            is_available=is_available,
        )
        db.add(row)
        db.commit()
        db.refresh(row)

    logger.info(
        'Override %s (%s) created for professional %s on %s',
        row.id,
        'available' if is_available else 'blocked',
        professional_id,
        for_date,
    )
    return DateOverride.from_row(row)


def delete_override(db: Session, professional_id: int, override_id: int) -> bool:
    with translate_store_errors(db, rollback=True):
        row = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.id == override_id,
            AvailabilityOverride.professional_id == professional_id,
        ).first()
        if row is None:
            return False
        db.delete(row)
        db.commit()
    return True


def validate_instant_range(starts_at: datetime, ends_at: datetime) -> Interval:
    if starts_at.tzinfo is None or ends_at.tzinfo is None:
        raise InvalidRange('Blocked times must include a timezone offset.')

    block_range = Interval(as_utc(starts_at), as_utc(ends_at))
    if block_range.is_empty:
        raise InvalidRange()
    return block_range


def create_blocked_slot(
    db: Session,
    professional_id: int,
    starts_at: datetime,
    ends_at: datetime,
    reason: str | None = None,
) -> Block:
    block_range = validate_instant_range(starts_at, ends_at)

    with translate_store_errors(db, rollback=True):
        row = BlockedSlot(
            professional_id=professional_id,
            starts_at=to_storage(block_range.start),
            ends_at=to_storage(block_range.end),
            reason=reason,
        )
        db.add(row)
        db.commit()
        db.refresh(row)

    logger.info('Blocked slot %s created for professional %s', row.id, professional_id)
    return Block.from_row(row)


def update_blocked_slot(
    db: Session,
    professional_id: int,
    block_id: int,
    starts_at: datetime | None = None,
    ends_at: datetime | None = None,
    reason: str | None = None,
) -> Block | None:
    with translate_store_errors(db):
        row = db.query(BlockedSlot).filter(
            BlockedSlot.id == block_id,
            BlockedSlot.professional_id == professional_id,
        ).first()
    if row is None:
        return None

    current = Block.from_row(row)
    block_range = validate_instant_range(
        current.starts_at if starts_at is None else starts_at,
        current.ends_at if ends_at is None else ends_at,
    )

    with translate_store_errors(db, rollback=True):
        row.starts_at = to_storage(block_range.start)
        row.ends_at = to_storage(block_range.end)
        if reason is not None:
            row.reason = reason
        db.commit()
        db.refresh(row)

    return Block.from_row(row)


def delete_blocked_slot(db: Session, professional_id: int, block_id: int) -> bool:
    with translate_store_errors(db, rollback=True):
        row = db.query(BlockedSlot).filter(
            BlockedSlot.id == block_id,
            BlockedSlot.professional_id == professional_id,
        ).first()
        if row is None:
            return False
        db.delete(row)
        db.commit()
    return True
