"""Admin-editable scheduling settings.

Values live in the ``system_configurations`` table and are read once per
request into an immutable ``SchedulingSettings`` that is passed explicitly
to the scheduling core. Missing or inactive keys fall back to the process
defaults in ``telehealth.core.config``.
"""

import logging
from dataclasses import dataclass, replace
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.models.system_configuration import SystemConfiguration
from telehealth.scheduling.errors import InvalidRange, UpstreamUnavailable
from telehealth.scheduling.intervals import Interval
from telehealth.scheduling.timewindows import get_zone, parse_wall_clock

logger = logging.getLogger(__name__)

CONFIRMATION_HOURS_KEY = 'appointment_confirmation_hours_before'
SCHEDULE_START_HOUR_KEY = 'schedule_start_hour'
SCHEDULE_END_HOUR_KEY = 'schedule_end_hour'
SCHEDULING_TIMEZONE_KEY = 'scheduling_timezone'

SETTING_FIELDS = {
    CONFIRMATION_HOURS_KEY: ('confirmation_hours_before', 'integer'),
    SCHEDULE_START_HOUR_KEY: ('start_hour', 'string'),
    SCHEDULE_END_HOUR_KEY: ('end_hour', 'string'),
    SCHEDULING_TIMEZONE_KEY: ('timezone', 'string'),
}


@dataclass(frozen=True)
class SchedulingSettings:
    timezone: str = config.SCHEDULING_TIMEZONE
    confirmation_hours_before: int = config.CONFIRMATION_HOURS_BEFORE
    start_hour: str = config.SCHEDULE_START_HOUR
    end_hour: str = config.SCHEDULE_END_HOUR

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)

    @property
    def business_hours(self) -> Interval:
        """Business-hours envelope as minutes of the civil day."""
        return Interval(parse_wall_clock(self.start_hour), parse_wall_clock(self.end_hour, is_end=True))

    def validate(self) -> 'SchedulingSettings':
        get_zone(self.timezone)
        if self.confirmation_hours_before < 0:
            raise InvalidRange('Confirmation hours must be zero or greater.')
        if self.business_hours.is_empty:
            raise InvalidRange('Schedule start hour must be before end hour.')
        return self


def _coerce(field: str, raw_value: str):
    if field == 'confirmation_hours_before':
        return int(raw_value.strip())
    return raw_value.strip()


def apply_setting(settings: SchedulingSettings, config_key: str, raw_value: str) -> SchedulingSettings:
    if config_key not in SETTING_FIELDS:
        raise InvalidRange(f'Unknown configuration key: {config_key}.')

    field, _ = SETTING_FIELDS[config_key]
    try:
        value = _coerce(field, raw_value)
    except ValueError as exc:
        raise InvalidRange(f'Invalid value for {config_key}: {raw_value!r}.') from exc

    return replace(settings, **{field: value}).validate()


def load_scheduling_settings(db: Session) -> SchedulingSettings:
    try:
        rows = db.query(SystemConfiguration).filter(
            SystemConfiguration.config_key.in_(SETTING_FIELDS),
            SystemConfiguration.is_active.is_(True),
        ).all()
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable() from exc

    values = {}
    for row in rows:
        field, _ = SETTING_FIELDS[row.config_key]
        try:
            values[field] = _coerce(field, row.config_value)
        except ValueError:
            logger.warning('Ignoring configuration %s=%r: not a valid value', row.config_key, row.config_value)

    settings = SchedulingSettings(**values)
    try:
        return settings.validate()
    except InvalidRange as exc:
        logger.warning('Ignoring stored scheduling configuration, using defaults: %s', exc.detail)
        return SchedulingSettings()


def list_configurations(db: Session) -> list[SystemConfiguration]:
    try:
        return db.query(SystemConfiguration).order_by(SystemConfiguration.config_key.asc()).all()
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable() from exc


def upsert_configuration(
    db: Session,
    config_key: str,
    config_value: str,
    is_active: bool = True,
    description: str | None = None,
) -> SystemConfiguration:
    current = load_scheduling_settings(db)
    apply_setting(current, config_key, config_value)

    try:
        row = db.query(SystemConfiguration).filter(SystemConfiguration.config_key == config_key).first()
        if row is None:
            row = SystemConfiguration(config_key=config_key, data_type=SETTING_FIELDS[config_key][1])
            db.add(row)

        row.config_value = config_value.strip()
        row.is_active = is_active
        if description is not None:
            row.description = description

        db.commit()
        db.refresh(row)
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamUnavailable() from exc

    logger.info('Configuration %s set to %r', config_key, row.config_value)
    return row
