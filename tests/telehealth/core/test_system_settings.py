import pytest

from telehealth.core.system_settings import (
    CONFIRMATION_HOURS_KEY,
    SCHEDULE_END_HOUR_KEY,
    SCHEDULE_START_HOUR_KEY,
    SCHEDULING_TIMEZONE_KEY,
    SchedulingSettings,
    apply_setting,
    list_configurations,
    load_scheduling_settings,
    upsert_configuration,
)
from telehealth.models.system_configuration import SystemConfiguration
from telehealth.scheduling.errors import InvalidRange
from telehealth.scheduling.intervals import Interval


def add_configuration(db, key: str, value: str, is_active: bool = True) -> None:
    db.add(SystemConfiguration(config_key=key, config_value=value, data_type='string', is_active=is_active))
    db.commit()


def test_defaults_without_stored_configuration(db_session) -> None:
    settings = load_scheduling_settings(db_session)

    assert settings == SchedulingSettings()


def test_stored_values_override_defaults(db_session) -> None:
    add_configuration(db_session, CONFIRMATION_HOURS_KEY, '48')
    add_configuration(db_session, SCHEDULE_START_HOUR_KEY, '06:00')
    add_configuration(db_session, SCHEDULE_END_HOUR_KEY, '00:00')
    add_configuration(db_session, SCHEDULING_TIMEZONE_KEY, 'America/New_York')

    settings = load_scheduling_settings(db_session)

    assert settings.confirmation_hours_before == 48
    assert settings.business_hours == Interval(360, 1440)
    assert settings.zone.key == 'America/New_York'


def test_inactive_rows_are_ignored(db_session) -> None:
    add_configuration(db_session, CONFIRMATION_HOURS_KEY, '48', is_active=False)

    assert load_scheduling_settings(db_session).confirmation_hours_before == SchedulingSettings().confirmation_hours_before


def test_unparseable_value_is_skipped(db_session, caplog) -> None:
    add_configuration(db_session, CONFIRMATION_HOURS_KEY, 'a day')
    add_configuration(db_session, SCHEDULE_START_HOUR_KEY, '07:00')

    settings = load_scheduling_settings(db_session)

    assert settings.confirmation_hours_before == SchedulingSettings().confirmation_hours_before
    assert settings.start_hour == '07:00'
    assert 'Ignoring configuration' in caplog.text


def test_invalid_combination_falls_back_to_defaults(db_session) -> None:
    add_configuration(db_session, SCHEDULE_START_HOUR_KEY, '20:00')
    add_configuration(db_session, SCHEDULE_END_HOUR_KEY, '10:00')

    assert load_scheduling_settings(db_session) == SchedulingSettings()


@pytest.mark.parametrize(
    ('key', 'value'),
    [
        ('unknown_key', '1'),
        (CONFIRMATION_HOURS_KEY, 'soon'),
        (CONFIRMATION_HOURS_KEY, '-1'),
        (SCHEDULING_TIMEZONE_KEY, 'Mars/Olympus_Mons'),
        (SCHEDULE_START_HOUR_KEY, '23:30'),
    ],
)
def test_apply_setting_rejects_invalid_values(key: str, value: str) -> None:
    with pytest.raises(InvalidRange):
        apply_setting(SchedulingSettings(start_hour='08:00', end_hour='23:00'), key, value)


def test_upsert_configuration_creates_and_updates(db_session) -> None:
    created = upsert_configuration(db_session, CONFIRMATION_HOURS_KEY, ' 12 ', description='Confirmation window')
    updated = upsert_configuration(db_session, CONFIRMATION_HOURS_KEY, '36')

    assert created.id == updated.id
    assert updated.config_value == '36'
    assert updated.data_type == 'integer'
    assert updated.description == 'Confirmation window'
    assert load_scheduling_settings(db_session).confirmation_hours_before == 36
    assert [row.config_key for row in list_configurations(db_session)] == [CONFIRMATION_HOURS_KEY]


def test_upsert_configuration_validates_value(db_session) -> None:
    with pytest.raises(InvalidRange):
        upsert_configuration(db_session, SCHEDULING_TIMEZONE_KEY, 'Not/AZone')

    assert list_configurations(db_session) == []
