"""Typed failures raised by the scheduling core.

Routes translate these into ``HTTPException`` using ``status_code`` and
``detail``; nothing in the core swallows them.
"""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Scheduling request failed.'

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NoAvailability(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'No availability for the requested time.'


class SlotConflict(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This time is already booked.'


class WrongState(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This appointment does not require confirmation.'


class OutOfWindow(SchedulingError):
    default_detail = 'The appointment is outside the confirmation window.'


class AlreadyPast(SchedulingError):
    default_detail = 'This appointment time has already passed.'


class AlreadyTerminal(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This appointment is already completed or cancelled.'


class InvalidRange(SchedulingError):
    default_detail = 'Start time must be before end time.'


class UpstreamUnavailable(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
