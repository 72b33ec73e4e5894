from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import require_role
from telehealth.core import config
from telehealth.core.system_settings import load_scheduling_settings
from telehealth.database import get_db
from telehealth.models.user import ROLE_PROFESSIONAL, User
from telehealth.routes.common import ensure_database_ready, scheduling_errors
from telehealth.scheduling import availability_store
from telehealth.scheduling.errors import NoAvailability
from telehealth.scheduling.slots import (
    available_dates,
    chunk_slots,
    compute_open_slots,
    schedule_hour_options,
)
from telehealth.scheduling.timewindows import civil_date, format_wall_clock, utc_now

router = APIRouter(tags=['availability'])

MAX_BLOCK_REASON_LENGTH = 300


def _normalize_wall_clock(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Time is required.')
    return normalized


class WeeklyRuleRequest(BaseModel):
    weekday: int
    start_time: str
    end_time: str

    @field_validator('weekday')
    @classmethod
    def validate_weekday(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError('Weekday must be between 0 (Sunday) and 6 (Saturday).')
        return value

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_wall_clock(value)


class UpdateWeeklyRuleRequest(BaseModel):
    weekday: int | None = None
    start_time: str | None = None
    end_time: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _normalize_wall_clock(value)


class WeeklyRuleResponse(BaseModel):
    id: int
    professional_id: int
    weekday: int
    start_time: str
    end_time: str

    @classmethod
    def from_rule(cls, rule: availability_store.WeeklyRule) -> "WeeklyRuleResponse":
        return cls(
            id=rule.id,
            professional_id=rule.professional_id,
            weekday=rule.weekday,
            start_time=rule.start_time,
            end_time=rule.end_time,
        )


class OverrideRequest(BaseModel):
    for_date: date
    start_time: str
    end_time: str
    is_available: bool

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_wall_clock(value)


class OverrideResponse(BaseModel):
    id: int
    professional_id: int
    for_date: date
    start_time: str
    end_time: str
    is_available: bool

    @classmethod
    def from_override(cls, override: availability_store.DateOverride) -> "OverrideResponse":
        return cls(
            id=override.id,
            professional_id=override.professional_id,
            for_date=override.for_date,
            start_time=override.start_time,
            end_time=override.end_time,
            is_available=override.is_available,
        )


class BlockedSlotRequest(BaseModel):
    starts_at: datetime
    ends_at: datetime
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized


class UpdateBlockedSlotRequest(BlockedSlotRequest):
    starts_at: datetime | None = None
    ends_at: datetime | None = None


class BlockedSlotResponse(BaseModel):
    id: int
    professional_id: int
    starts_at: datetime
    ends_at: datetime
    reason: str | None = None

    @classmethod
    def from_block(cls, block: availability_store.Block) -> "BlockedSlotResponse":
        return cls(
            id=block.id,
            professional_id=block.professional_id,
            starts_at=block.starts_at,
            ends_at=block.ends_at,
            reason=block.reason,
        )


class AvailabilityViewResponse(BaseModel):
    weekly_rules: list[WeeklyRuleResponse]
    overrides: list[OverrideResponse]
    blocked_slots: list[BlockedSlotResponse]


class TimeRangeResponse(BaseModel):
    start: datetime
    end: datetime
    local_date: date
    local_start_time: str
    local_end_time: str


class OpenSlotsResponse(BaseModel):
    professional_id: int
    date: date
    timezone: str
    duration_minutes: int
    open_ranges: list[TimeRangeResponse]
    slots: list[TimeRangeResponse]


class AvailableDatesResponse(BaseModel):
    professional_id: int
    duration_minutes: int
    dates: list[date]


class ScheduleHoursResponse(BaseModel):
    start_hour: str
    end_hour: str
    time_slots: list[str]


def _local_range(interval, zone) -> TimeRangeResponse:
    local_start = interval.start.astimezone(zone)
    local_end = interval.end.astimezone(zone)
    return TimeRangeResponse(
        start=interval.start,
        end=interval.end,
        local_date=local_start.date(),
        local_start_time=format_wall_clock(local_start.hour * 60 + local_start.minute),
        local_end_time=format_wall_clock(local_end.hour * 60 + local_end.minute),
    )


@router.get('/view', response_model=AvailabilityViewResponse)
def get_my_availability(
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        view = availability_store.get_availability_view(db, current_user.id)

    return AvailabilityViewResponse(
        weekly_rules=[WeeklyRuleResponse.from_rule(rule) for rule in view.weekly_rules],
        overrides=[OverrideResponse.from_override(override) for override in view.overrides],
        blocked_slots=[BlockedSlotResponse.from_block(block) for block in view.blocked_slots],
    )


@router.get('/rules', response_model=list[WeeklyRuleResponse])
def list_my_rules(
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        rules = availability_store.list_weekly_rules(db, current_user.id)

    return [WeeklyRuleResponse.from_rule(rule) for rule in rules]


@router.post('/rules', response_model=WeeklyRuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: WeeklyRuleRequest,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        rule = availability_store.create_weekly_rule(
            db,
            current_user.id,
            data.weekday,
            data.start_time,
            data.end_time,
            settings,
        )

    return WeeklyRuleResponse.from_rule(rule)


@router.put('/rules/{rule_id}', response_model=WeeklyRuleResponse)
def update_rule(
    rule_id: int,
    data: UpdateWeeklyRuleRequest,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        rule = availability_store.update_weekly_rule(
            db,
            current_user.id,
            rule_id,
            settings,
            weekday=data.weekday,
            start=data.start_time,
            end=data.end_time,
        )

    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Availability rule not found.',
        )
    return WeeklyRuleResponse.from_rule(rule)


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        deleted = availability_store.delete_weekly_rule(db, current_user.id, rule_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Availability rule not found.',
        )


@router.get('/overrides', response_model=list[OverrideResponse])
def list_my_overrides(
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        overrides = availability_store.list_overrides(db, current_user.id)

    return [OverrideResponse.from_override(override) for override in overrides]


@router.post('/overrides', response_model=OverrideResponse, status_code=status.HTTP_201_CREATED)
def create_override(
    data: OverrideRequest,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        override = availability_store.create_override(
            db,
            current_user.id,
            data.for_date,
            data.start_time,
            data.end_time,
            data.is_available,
            settings,
        )

    return OverrideResponse.from_override(override)


@router.delete('/overrides/{override_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_override(
    override_id: int,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        deleted = availability_store.delete_override(db, current_user.id, override_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Availability override not found.',
        )


@router.get('/blocked-slots', response_model=list[BlockedSlotResponse])
def list_my_blocked_slots(
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        blocks = availability_store.list_blocked_slots(db, current_user.id)

    return [BlockedSlotResponse.from_block(block) for block in blocks]


@router.post('/blocked-slots', response_model=BlockedSlotResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_slot(
    data: BlockedSlotRequest,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        block = availability_store.create_blocked_slot(
            db,
            current_user.id,
            data.starts_at,
            data.ends_at,
            data.reason,
        )

    return BlockedSlotResponse.from_block(block)


@router.put('/blocked-slots/{block_id}', response_model=BlockedSlotResponse)
def update_blocked_slot(
    block_id: int,
    data: UpdateBlockedSlotRequest,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        block = availability_store.update_blocked_slot(
            db,
            current_user.id,
            block_id,
            starts_at=data.starts_at,
            ends_at=data.ends_at,
            reason=data.reason,
        )

    if block is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Blocked time not found.',
        )
    return BlockedSlotResponse.from_block(block)


@router.delete('/blocked-slots/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_blocked_slot(
    block_id: int,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        deleted = availability_store.delete_blocked_slot(db, current_user.id, block_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Blocked time not found.',
        )


@router.get('/professionals/{professional_id}/slots', response_model=OpenSlotsResponse)
def list_open_slots(
    professional_id: int,
    slot_date: date = Query(alias='date'),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_MINUTES, gt=0, le=24 * 60),
    step_minutes: int | None = Query(default=None, gt=0, le=24 * 60),
    require_availability: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        open_ranges = compute_open_slots(
            db,
            professional_id,
            slot_date,
            duration_minutes,
            settings,
            not_before=utc_now(),
        )
        zone = settings.zone
        slots = chunk_slots(open_ranges, duration_minutes, step_minutes, zone=zone)
        if require_availability and not slots:
            raise NoAvailability(f'No open slots on {slot_date.isoformat()}.')

    return OpenSlotsResponse(
        professional_id=professional_id,
        date=slot_date,
        timezone=settings.timezone,
        duration_minutes=duration_minutes,
        open_ranges=[_local_range(interval, zone) for interval in open_ranges],
        slots=[_local_range(interval, zone) for interval in slots],
    )


@router.get('/professionals/{professional_id}/dates', response_model=AvailableDatesResponse)
def list_available_dates(
    professional_id: int,
    days: int = Query(default=config.AVAILABLE_DATES_RANGE_DAYS, ge=1, le=90),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_MINUTES, gt=0, le=24 * 60),
    require_availability: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        now = utc_now()
        dates = available_dates(
            db,
            professional_id,
            civil_date(now, settings.zone),
            days,
            duration_minutes,
            settings,
            not_before=now,
        )
        if require_availability and not dates:
            raise NoAvailability(f'No open dates in the next {days} days.')

    return AvailableDatesResponse(professional_id=professional_id, duration_minutes=duration_minutes, dates=dates)


@router.get('/schedule/hours', response_model=ScheduleHoursResponse)
def get_schedule_hours(db: Session = Depends(get_db)):
    with scheduling_errors():
        settings = load_scheduling_settings(db)

    return ScheduleHoursResponse(
        start_hour=settings.start_hour,
        end_hour=settings.end_hour,
        time_slots=schedule_hour_options(settings),
    )
