from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import get_current_user, require_role
from telehealth.core import config
from telehealth.core.system_settings import load_scheduling_settings
from telehealth.database import get_db
from telehealth.models.appointment import Appointment
from telehealth.models.user import ROLE_ADMIN, ROLE_PATIENT, ROLE_PROFESSIONAL, User
from telehealth.routes.common import ensure_database_ready, scheduling_errors
from telehealth.scheduling.booking import book_appointment
from telehealth.scheduling.errors import UpstreamUnavailable
from telehealth.scheduling.state_machine import (
    TransitionAction,
    apply_transition,
    auto_complete,
    get_appointment,
)
from telehealth.scheduling.timewindows import as_utc, utc_now

router = APIRouter(tags=['appointments'])


def _normalize_optional_text(value: str | None, max_length: int) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'Text must be {max_length} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    professional_id: int
    service: str
    start_time: datetime
    duration_minutes: int = Field(default=config.DEFAULT_SLOT_MINUTES, gt=0, le=24 * 60)
    note: str | None = None

    @field_validator('service')
    @classmethod
    def validate_service(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Service is required.')
        return normalized

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError('Start time must include a timezone offset.')
        return value.replace(second=0, microsecond=0)

    @field_validator('note')
    @classmethod
    def validate_note(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, config.MAX_APPOINTMENT_NOTE_LENGTH)


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, config.MAX_APPOINTMENT_NOTE_LENGTH)


class AppointmentResponse(BaseModel):
    id: str
    patient_id: int
    professional_id: int
    service: str
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    status: str
    meet_link: str | None = None
    note: str | None = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            professional_id=appointment.professional_id,
            service=appointment.service,
            scheduled_at=as_utc(appointment.scheduled_at),
            ends_at=as_utc(appointment.ends_at),
            duration_minutes=appointment.duration_minutes,
            status=appointment.status,
            meet_link=appointment.meet_link,
            note=appointment.note,
        )


class AutoCompleteResponse(BaseModel):
    completed: int
    appointment_ids: list[str]


def _load_appointment(db: Session, appointment_id: str) -> Appointment:
    with scheduling_errors():
        appointment = get_appointment(db, appointment_id, for_update=True)

    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    return appointment


def _is_participant(appointment: Appointment, user: User) -> bool:
    return user.id in (appointment.patient_id, appointment.professional_id)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(require_role(ROLE_PATIENT)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        appointment = book_appointment(
            db,
            patient_id=current_user.id,
            professional_id=data.professional_id,
            service=data.service,
            slot_start=data.start_time,
            duration_minutes=data.duration_minutes,
            settings=settings,
            now=utc_now(),
            note=data.note,
        )

    return AppointmentResponse.from_appointment(appointment)


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if current_user.role == ROLE_PATIENT:
            query = query.filter(Appointment.patient_id == current_user.id)
        elif current_user.role == ROLE_PROFESSIONAL:
            query = query.filter(Appointment.professional_id == current_user.id)
        elif current_user.role != ROLE_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='You do not have permission to view appointments.',
            )
        appointments = query.order_by(Appointment.scheduled_at.asc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UpstreamUnavailable.default_detail,
        ) from exc

    return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment_detail(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors():
        appointment = get_appointment(db, appointment_id)

    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )

    if current_user.role != ROLE_ADMIN and not _is_participant(appointment, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to view this appointment.',
        )

    return AppointmentResponse.from_appointment(appointment)


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: str,
    current_user: User = Depends(require_role(ROLE_PATIENT)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    if appointment.patient_id != current_user.id:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to confirm this appointment.',
        )

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        appointment = apply_transition(db, appointment, TransitionAction.CONFIRM, utc_now(), settings)

    return AppointmentResponse.from_appointment(appointment)


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: str,
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    if appointment.professional_id != current_user.id:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to complete this appointment.',
        )

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        appointment = apply_transition(db, appointment, TransitionAction.COMPLETE, utc_now(), settings)

    return AppointmentResponse.from_appointment(appointment)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: str,
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    if current_user.role != ROLE_ADMIN and not _is_participant(appointment, current_user):
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have permission to cancel this appointment.',
        )

    with scheduling_errors():
        settings = load_scheduling_settings(db)
        appointment = apply_transition(
            db,
            appointment,
            TransitionAction.CANCEL,
            utc_now(),
            settings,
            reason=data.reason,
        )

    return AppointmentResponse.from_appointment(appointment)


@router.post('/auto-complete', response_model=AutoCompleteResponse)
def auto_complete_appointments(
    current_user: User = Depends(require_role(ROLE_PROFESSIONAL, ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    """Complete past open appointments: the caller's own, or everyone's for admins."""
    ensure_database_ready()

    professional_id = None if current_user.role == ROLE_ADMIN else current_user.id
    with scheduling_errors():
        completed_ids = auto_complete(db, utc_now(), professional_id=professional_id)

    return AutoCompleteResponse(completed=len(completed_ids), appointment_ids=completed_ids)
