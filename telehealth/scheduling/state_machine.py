"""Appointment lifecycle.

    pending_confirmation -> confirmed -> completed
    pending_confirmation | confirmed -> cancelled
    pending_confirmation | confirmed -> completed   (manual or sweep)

``completed`` and ``cancelled`` are terminal. Status is only ever written
by ``apply_transition`` and ``auto_complete`` (and set once on creation by
the booking transaction).
"""

import logging
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core.system_settings import SchedulingSettings
from telehealth.models.appointment import Appointment
from telehealth.scheduling import events
from telehealth.scheduling.errors import (
    AlreadyPast,
    AlreadyTerminal,
    OutOfWindow,
    UpstreamUnavailable,
    WrongState,
)
from telehealth.scheduling.timewindows import as_utc, to_storage

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    PENDING_CONFIRMATION = 'pending_confirmation'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class TransitionAction(str, Enum):
    CONFIRM = 'confirm'
    COMPLETE = 'complete'
    CANCEL = 'cancel'


OPEN_STATUSES = (AppointmentStatus.PENDING_CONFIRMATION, AppointmentStatus.CONFIRMED)
TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

TRANSITIONS = {
    TransitionAction.CONFIRM: ((AppointmentStatus.PENDING_CONFIRMATION,), AppointmentStatus.CONFIRMED),
    TransitionAction.COMPLETE: (OPEN_STATUSES, AppointmentStatus.COMPLETED),
    TransitionAction.CANCEL: (OPEN_STATUSES, AppointmentStatus.CANCELLED),
}

EVENT_KINDS = {
    AppointmentStatus.CONFIRMED: events.APPOINTMENT_CONFIRMED,
    AppointmentStatus.COMPLETED: events.APPOINTMENT_COMPLETED,
    AppointmentStatus.CANCELLED: events.APPOINTMENT_CANCELLED,
}


def current_status(appointment: Appointment) -> AppointmentStatus:
    return AppointmentStatus(appointment.status)


def check_confirm(appointment: Appointment, now: datetime, settings: SchedulingSettings) -> None:
    """Patients may confirm only while pending and within the confirmation window."""
    if current_status(appointment) != AppointmentStatus.PENDING_CONFIRMATION:
        raise WrongState()

    time_until = as_utc(appointment.scheduled_at) - as_utc(now)
    if time_until <= timedelta(0):
        raise AlreadyPast()

    if time_until > timedelta(hours=settings.confirmation_hours_before):
        raise OutOfWindow(
            f'You can only confirm attendance {settings.confirmation_hours_before} hours before the appointment.'
        )


def check_not_terminal(appointment: Appointment) -> None:
    status = current_status(appointment)
    if status == AppointmentStatus.COMPLETED:
        raise AlreadyTerminal('This appointment is already marked as completed.')
    if status == AppointmentStatus.CANCELLED:
        raise AlreadyTerminal('This appointment has been cancelled.')


def next_status(
    action: TransitionAction,
    appointment: Appointment,
    now: datetime,
    settings: SchedulingSettings,
) -> AppointmentStatus:
    if action == TransitionAction.CONFIRM:
        check_confirm(appointment, now, settings)
    else:
        check_not_terminal(appointment)

    allowed_from, target = TRANSITIONS[action]
    if current_status(appointment) not in allowed_from:
        raise WrongState()
    return target


def get_appointment(db: Session, appointment_id: str, for_update: bool = False) -> Appointment | None:
    try:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable() from exc


def apply_transition(
    db: Session,
    appointment: Appointment,
    action: TransitionAction,
    now: datetime,
    settings: SchedulingSettings,
    reason: str | None = None,
    dispatcher: events.EventDispatcher = events.dispatcher,
) -> Appointment:
    target = next_status(action, appointment, now, settings)
    previous = appointment.status

    try:
        appointment.status = target.value
        appointment.updated_at = to_storage(now)
        if action == TransitionAction.CANCEL and reason:
            appointment.note = f'{appointment.note}\n' if appointment.note else ''
            appointment.note += f'Cancelled: {reason}'
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamUnavailable() from exc

    logger.info('Appointment %s: %s -> %s', appointment.id, previous, appointment.status)
    dispatcher.emit(events.AppointmentEvent.from_appointment(EVENT_KINDS[target], appointment))
    return appointment


def auto_complete(
    db: Session,
    now: datetime,
    professional_id: int | None = None,
    dispatcher: events.EventDispatcher = events.dispatcher,
) -> list[str]:
    """Complete every open appointment whose start time has passed.

    Scoped to one professional unless ``professional_id`` is None. Running it
    again without new eligible rows changes nothing.
    """
    try:
        query = db.query(Appointment).filter(
            Appointment.status.in_([status.value for status in OPEN_STATUSES]),
            Appointment.scheduled_at <= to_storage(now),
        )
        if professional_id is not None:
            query = query.filter(Appointment.professional_id == professional_id)
        appointments = query.order_by(Appointment.scheduled_at.asc()).with_for_update().all()

        if not appointments:
            return []

        for appointment in appointments:
            appointment.status = AppointmentStatus.COMPLETED.value
            appointment.updated_at = to_storage(now)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamUnavailable() from exc

    logger.info('Auto-completed %s appointment(s)', len(appointments))
    for appointment in appointments:
        dispatcher.emit(events.AppointmentEvent.from_appointment(events.APPOINTMENT_COMPLETED, appointment))

    return [appointment.id for appointment in appointments]
