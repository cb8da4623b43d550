"""Domain exceptions and the handlers that turn them into JSON error bodies.

Every error leaving the API has the shape ``{"message": ...}``; a dict
``HTTPException.detail`` is passed through untouched so routes can attach
extra fields (``hasAssociatedData`` and friends).
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

APPOINTMENT_CONFLICT_MESSAGE = 'Appointment time conflicts with existing appointment'
PROFILE_PROVISIONING_MESSAGE = 'Unable to create patient record. Please contact administrator.'
DATABASE_UNAVAILABLE_MESSAGE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class AppointmentConflictError(Exception):
    """The proposed interval overlaps another live appointment for the doctor."""

    def __init__(self, doctor_id: int, conflicting_id: int | None = None):
        super().__init__(APPOINTMENT_CONFLICT_MESSAGE)
        self.doctor_id = doctor_id
        self.conflicting_id = conflicting_id


class ProfileProvisioningError(Exception):
    """A patient profile could neither be found nor created for a user."""


class DatabaseUnavailableError(Exception):
    """The entity store is not in a usable state."""


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, AppointmentConflictError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=APPOINTMENT_CONFLICT_MESSAGE)
    if isinstance(exc, ProfileProvisioningError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={'message': PROFILE_PROVISIONING_MESSAGE, 'details': str(exc)},
        )
    if isinstance(exc, DatabaseUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE_MESSAGE)
    raise TypeError(f'No HTTP mapping for {type(exc).__name__}')


def _format_validation_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get('loc', ()) if part not in ('body', 'query', 'path')]
        errors.append({'field': '.'.join(location), 'message': error.get('msg', 'Invalid value')})
    return errors


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {'message': exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, 'headers', None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'message': 'Validation failed', 'errors': _format_validation_errors(exc)},
    )


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return await http_exception_handler(request, to_http_exception(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'message': 'Server error'})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AppointmentConflictError, domain_exception_handler)
    app.add_exception_handler(ProfileProvisioningError, domain_exception_handler)
    app.add_exception_handler(DatabaseUnavailableError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
