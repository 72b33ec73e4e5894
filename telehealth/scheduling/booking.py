"""Booking transaction.

At most one of several concurrent bookings for overlapping ranges of the
same professional commits. Within a process the check-then-insert runs
under one of a fixed set of locks picked by professional id; across
processes the professional's user row is locked ``FOR UPDATE`` and, on
PostgreSQL, the ``appointments_no_overlap`` exclusion constraint rejects
whatever slips through as an ``IntegrityError``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from threading import Lock
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core.system_settings import SchedulingSettings
from telehealth.models.appointment import Appointment
from telehealth.models.user import ROLE_PROFESSIONAL, User
from telehealth.scheduling import events
from telehealth.scheduling.availability_store import list_booked_ranges
from telehealth.scheduling.errors import (
    AlreadyPast,
    InvalidRange,
    NoAvailability,
    SchedulingError,
    SlotConflict,
    UpstreamUnavailable,
)
from telehealth.scheduling.intervals import Interval, contains
from telehealth.scheduling.slots import compute_open_slots
from telehealth.scheduling.state_machine import AppointmentStatus
from telehealth.scheduling.timewindows import as_utc, civil_date, to_storage

logger = logging.getLogger(__name__)

BOOKING_LOCK_STRIPES = 64
_booking_locks = tuple(Lock() for _ in range(BOOKING_LOCK_STRIPES))


def booking_lock_for(professional_id: int) -> Lock:
    # Professionals sharing a stripe serialize their bookings with each other.
    return _booking_locks[professional_id % BOOKING_LOCK_STRIPES]


@contextmanager
def professional_booking_lock(professional_id: int):
    with booking_lock_for(professional_id):
        yield


def new_appointment_id() -> str:
    return f'APT-{uuid4().hex[:12].upper()}'


def _lock_professional(db: Session, professional_id: int) -> User:
    try:
        professional = db.query(User).filter(
            User.id == professional_id,
            User.role == ROLE_PROFESSIONAL,
        ).with_for_update().first()
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable() from exc

    if professional is None or professional.is_active is False:
        raise NoAvailability('Professional not found.')
    return professional


def book_appointment(
    db: Session,
    patient_id: int,
    professional_id: int,
    service: str,
    slot_start: datetime,
    duration_minutes: int,
    settings: SchedulingSettings,
    now: datetime,
    note: str | None = None,
    meet_link: str | None = None,
    dispatcher: events.EventDispatcher = events.dispatcher,
) -> Appointment:
    """Create a ``pending_confirmation`` appointment or raise ``SlotConflict``.

    The requested range must lie inside one of the professional's open
    intervals for that civil date (``NoAvailability`` otherwise) and must not
    overlap any non-cancelled appointment.
    """
    if duration_minutes <= 0:
        raise InvalidRange('Service duration must be greater than zero minutes.')
    if slot_start.tzinfo is None:
        raise InvalidRange('Appointment start must include a timezone offset.')

    requested = Interval(as_utc(slot_start), as_utc(slot_start) + timedelta(minutes=duration_minutes))
    if requested.start <= as_utc(now):
        raise AlreadyPast('Appointments must be scheduled in the future.')

    with professional_booking_lock(professional_id):
        try:
            _lock_professional(db, professional_id)

            if list_booked_ranges(db, professional_id, requested):
                raise SlotConflict()

            day = civil_date(requested.start, settings.zone)
            open_ranges = compute_open_slots(db, professional_id, day, duration_minutes, settings, not_before=now)
            if not any(contains(open_range, requested) for open_range in open_ranges):
                raise NoAvailability("The requested time is outside the professional's availability.")

            appointment = Appointment(
                id=new_appointment_id(),
                patient_id=patient_id,
                professional_id=professional_id,
                service=service,
                scheduled_at=to_storage(requested.start),
                ends_at=to_storage(requested.end),
                duration_minutes=duration_minutes,
                status=AppointmentStatus.PENDING_CONFIRMATION.value,
                meet_link=meet_link,
                note=note,
                created_at=to_storage(now),
                updated_at=to_storage(now),
            )
            db.add(appointment)
            db.commit()
            db.refresh(appointment)
        except SchedulingError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            raise SlotConflict() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise UpstreamUnavailable() from exc

    logger.info(
        'Appointment %s booked for professional %s at %s',
        appointment.id,
        professional_id,
        requested.start.isoformat(),
    )
    dispatcher.emit(events.AppointmentEvent.from_appointment(events.APPOINTMENT_BOOKED, appointment))
    return appointment
