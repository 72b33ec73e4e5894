from datetime import date, datetime, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from telehealth.core.system_settings import SCHEDULING_TIMEZONE_KEY, upsert_configuration
from telehealth.routes.appointment_routes import CreateAppointmentRequest, create_appointment
from telehealth.routes.availability_routes import (
    BlockedSlotRequest,
    OverrideRequest,
    UpdateBlockedSlotRequest,
    UpdateWeeklyRuleRequest,
    WeeklyRuleRequest,
    create_blocked_slot,
    create_override,
    create_rule,
    delete_rule,
    get_my_availability,
    get_schedule_hours,
    list_available_dates,
    list_my_rules,
    list_open_slots,
    update_blocked_slot,
    update_rule,
)

MODULE = 'telehealth.routes.availability_routes'


@pytest.fixture
def routes_db(db_session, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(f'{MODULE}.ensure_database_ready', lambda: None)
    monkeypatch.setattr(f'{MODULE}.utc_now', lambda: datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc))
    upsert_configuration(db_session, SCHEDULING_TIMEZONE_KEY, 'UTC')
    return db_session


def test_weekly_rule_request_strips_times() -> None:
    request = WeeklyRuleRequest(weekday=1, start_time=' 09:00 ', end_time='12:00')

    assert request.start_time == '09:00'


def test_weekly_rule_request_rejects_bad_weekday() -> None:
    with pytest.raises(ValidationError):
        WeeklyRuleRequest(weekday=7, start_time='09:00', end_time='12:00')


def test_blocked_slot_request_normalizes_reason() -> None:
    request = BlockedSlotRequest(
        starts_at=datetime(2026, 1, 5, 9, tzinfo=timezone.utc),
        ends_at=datetime(2026, 1, 5, 10, tzinfo=timezone.utc),
        reason='   ',
    )

    assert request.reason is None


def test_blocked_slot_request_rejects_long_reason() -> None:
    with pytest.raises(ValidationError):
        BlockedSlotRequest(
            starts_at=datetime(2026, 1, 5, 9, tzinfo=timezone.utc),
            ends_at=datetime(2026, 1, 5, 10, tzinfo=timezone.utc),
            reason='x' * 301,
        )


def test_create_and_list_rules(routes_db, professional) -> None:
    created = create_rule(
        WeeklyRuleRequest(weekday=1, start_time='09:00', end_time='12:00'),
        current_user=professional,
        db=routes_db,
    )

    rules = list_my_rules(current_user=professional, db=routes_db)

    assert created.start_time == '09:00'
    assert created.end_time == '12:00'
    assert [rule.id for rule in rules] == [created.id]


def test_create_rule_translates_invalid_range(routes_db, professional) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_rule(
            WeeklyRuleRequest(weekday=1, start_time='12:00', end_time='09:00'),
            current_user=professional,
            db=routes_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Start time must be before end time.'


def test_update_and_delete_missing_rule_return_404(routes_db, professional) -> None:
    with pytest.raises(HTTPException) as update_info:
        update_rule(99, UpdateWeeklyRuleRequest(end_time='15:00'), current_user=professional, db=routes_db)

    with pytest.raises(HTTPException) as delete_info:
        delete_rule(99, current_user=professional, db=routes_db)

    assert update_info.value.status_code == 404
    assert delete_info.value.detail == 'Availability rule not found.'


def test_blocked_slot_round_trip(routes_db, professional) -> None:
    created = create_blocked_slot(
        BlockedSlotRequest(
            starts_at=datetime(2026, 1, 5, 9, tzinfo=timezone.utc),
            ends_at=datetime(2026, 1, 5, 10, tzinfo=timezone.utc),
            reason='Conference',
        ),
        current_user=professional,
        db=routes_db,
    )

    updated = update_blocked_slot(
        created.id,
        UpdateBlockedSlotRequest(ends_at=datetime(2026, 1, 5, 11, tzinfo=timezone.utc)),
        current_user=professional,
        db=routes_db,
    )

    assert updated.ends_at == datetime(2026, 1, 5, 11, tzinfo=timezone.utc)
    assert updated.reason == 'Conference'


def test_blocked_slot_without_offset_is_rejected(routes_db, professional) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_blocked_slot(
            BlockedSlotRequest(starts_at=datetime(2026, 1, 5, 9), ends_at=datetime(2026, 1, 5, 10)),
            current_user=professional,
            db=routes_db,
        )

    assert exception_info.value.status_code == 400


def test_availability_view(routes_db, professional) -> None:
    create_rule(WeeklyRuleRequest(weekday=1, start_time='09:00', end_time='12:00'), current_user=professional, db=routes_db)
    create_override(
        OverrideRequest(for_date=date(2026, 1, 6), start_time='09:00', end_time='11:00', is_available=True),
        current_user=professional,
        db=routes_db,
    )

    view = get_my_availability(current_user=professional, db=routes_db)

    assert len(view.weekly_rules) == 1
    assert view.overrides[0].is_available is True
    assert view.blocked_slots == []


def test_list_open_slots_hides_past_time(routes_db, professional) -> None:
    create_rule(WeeklyRuleRequest(weekday=1, start_time='08:00', end_time='12:00'), current_user=professional, db=routes_db)

    response = list_open_slots(
        professional.id,
        slot_date=date(2026, 1, 5),
        duration_minutes=60,
        step_minutes=None,
        require_availability=False,
        db=routes_db,
    )

    assert response.timezone == 'UTC'
    assert [(r.local_start_time, r.local_end_time) for r in response.open_ranges] == [('09:30', '12:00')]
    assert [slot.local_start_time for slot in response.slots] == ['10:00', '11:00']


def test_list_available_dates_starts_today(routes_db, professional) -> None:
    create_rule(WeeklyRuleRequest(weekday=1, start_time='08:00', end_time='12:00'), current_user=professional, db=routes_db)

    response = list_available_dates(professional.id, days=8, duration_minutes=60, require_availability=False, db=routes_db)

    assert response.dates == [date(2026, 1, 5), date(2026, 1, 12)]


def test_get_schedule_hours(routes_db) -> None:
    response = get_schedule_hours(db=routes_db)

    assert response.time_slots[0] == response.start_hour
    assert response.time_slots[-1] == response.end_hour


def test_listed_slot_can_be_booked_when_clock_has_seconds(routes_db, professional, patient, monkeypatch) -> None:
    now = datetime(2026, 1, 5, 9, 17, 23, 456000, tzinfo=timezone.utc)
    monkeypatch.setattr(f'{MODULE}.utc_now', lambda: now)
    monkeypatch.setattr('telehealth.routes.appointment_routes.utc_now', lambda: now)
    monkeypatch.setattr('telehealth.routes.appointment_routes.ensure_database_ready', lambda: None)
    create_rule(WeeklyRuleRequest(weekday=1, start_time='08:00', end_time='12:00'), current_user=professional, db=routes_db)

    response = list_open_slots(
        professional.id,
        slot_date=date(2026, 1, 5),
        duration_minutes=60,
        step_minutes=None,
        require_availability=False,
        db=routes_db,
    )
    first_slot = response.slots[0]

    appointment = create_appointment(
        CreateAppointmentRequest(
            professional_id=professional.id,
            service='General consultation',
            start_time=first_slot.start,
        ),
        current_user=patient,
        db=routes_db,
    )

    assert [slot.local_start_time for slot in response.slots] == ['10:00', '11:00']
    assert first_slot.start == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
    assert appointment.scheduled_at == first_slot.start


def test_list_open_slots_can_require_availability(routes_db, professional) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_open_slots(
            professional.id,
            slot_date=date(2026, 1, 6),
            duration_minutes=60,
            step_minutes=None,
            require_availability=True,
            db=routes_db,
        )

    empty = list_open_slots(
        professional.id,
        slot_date=date(2026, 1, 6),
        duration_minutes=60,
        step_minutes=None,
        require_availability=False,
        db=routes_db,
    )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'No open slots on 2026-01-06.'
    assert empty.slots == []


def test_list_available_dates_can_require_availability(routes_db, professional) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_dates(professional.id, days=7, duration_minutes=60, require_availability=True, db=routes_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'No open dates in the next 7 days.'
