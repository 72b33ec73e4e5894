import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from telehealth.database import Base  # noqa: E402
from telehealth.models import appointment as _appointment, availability as _availability  # noqa: E402,F401
from telehealth.models import system_configuration as _system_configuration  # noqa: E402,F401
from telehealth.models.appointment import Appointment  # noqa: E402
from telehealth.models.user import ROLE_ADMIN, ROLE_PATIENT, ROLE_PROFESSIONAL, User  # noqa: E402
from telehealth.scheduling.events import EventDispatcher  # noqa: E402


@pytest.fixture
def db_engine():
    engine = create_engine('sqlite:///:memory:')
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    counter = {'value': 0}

    def factory(role: str, email: str | None = None) -> User:
        counter['value'] += 1
        user = User(
            auth_user_id=f'auth-{role}-{counter["value"]}',
            email=email or f'{role}{counter["value"]}@example.com',
            full_name=f'{role.title()} {counter["value"]}',
            role=role,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture
def professional(make_user) -> User:
    return make_user(ROLE_PROFESSIONAL)


@pytest.fixture
def patient(make_user) -> User:
    return make_user(ROLE_PATIENT)


@pytest.fixture
def admin(make_user) -> User:
    return make_user(ROLE_ADMIN)


@pytest.fixture
def recorded_events():
    dispatcher = EventDispatcher()
    received = []
    dispatcher.subscribe(received.append)
    return dispatcher, received


@pytest.fixture
def add_appointment(db_session):
    counter = {'value': 0}

    def factory(
        patient_id: int,
        professional_id: int,
        scheduled_at: datetime,
        duration_minutes: int = 60,
        status: str = 'pending_confirmation',
    ) -> Appointment:
        counter['value'] += 1
        appointment = Appointment(
            id=f'APT-TEST{counter["value"]:04d}',
            patient_id=patient_id,
            professional_id=professional_id,
            service='General consultation',
            scheduled_at=scheduled_at,
            ends_at=scheduled_at + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            status=status,
        )
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return factory
