from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from telehealth.database import ensure_appointment_schema, ensure_availability_schema
from telehealth.scheduling.errors import SchedulingError, UpstreamUnavailable, to_http_exception


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UpstreamUnavailable.default_detail,
        ) from exc


@contextmanager
def scheduling_errors():
    try:
        yield
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
