"""Post-commit appointment events.

Events are emitted only after the database commit that caused them.
Delivery is best-effort: a failing subscriber is logged and skipped and
never rolls back or fails the appointment change.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from telehealth.models.appointment import Appointment
from telehealth.scheduling.timewindows import as_utc

logger = logging.getLogger(__name__)

APPOINTMENT_BOOKED = 'appointment.booked'
APPOINTMENT_CONFIRMED = 'appointment.confirmed'
APPOINTMENT_COMPLETED = 'appointment.completed'
APPOINTMENT_CANCELLED = 'appointment.cancelled'


@dataclass(frozen=True)
class AppointmentEvent:
    kind: str
    appointment_id: str
    patient_id: int
    professional_id: int
    scheduled_at: datetime
    status: str

    @classmethod
    def from_appointment(cls, kind: str, appointment: Appointment) -> 'AppointmentEvent':
        return cls(
            kind=kind,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            professional_id=appointment.professional_id,
            scheduled_at=as_utc(appointment.scheduled_at),
            status=appointment.status,
        )


Subscriber = Callable[[AppointmentEvent], None]


class EventDispatcher:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, event: AppointmentEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception('Notification subscriber failed for %s on %s', event.kind, event.appointment_id)


def log_appointment_event(event: AppointmentEvent) -> None:
    logger.info(
        '%s: appointment %s (patient %s, professional %s) at %s is %s',
        event.kind,
        event.appointment_id,
        event.patient_id,
        event.professional_id,
        event.scheduled_at.isoformat(),
        event.status,
    )


dispatcher = EventDispatcher()
dispatcher.subscribe(log_appointment_event)
