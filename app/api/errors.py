"""
Mapping of clock errors onto application exceptions
"""
from typing import NoReturn

from atams.exceptions import (
    AppException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    InternalServerException,
    NotFoundException,
    ServiceUnavailableException,
    UnprocessableEntityException,
    app_exception_handler,
    setup_exception_handlers,
)
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.core.errors import ClockErrorCode, Err

EXCEPTION_BY_CODE = {
    ClockErrorCode.VALIDATION_ERROR: BadRequestException,
    ClockErrorCode.FUTURE_TIMESTAMP: BadRequestException,
    ClockErrorCode.LOCATION_ACCURACY_TOO_LOW: BadRequestException,
    ClockErrorCode.LOCATION_TOO_FAR: ForbiddenException,
    ClockErrorCode.NO_ACTIVE_SESSION: NotFoundException,
    ClockErrorCode.ALREADY_CLOCKED_IN: ConflictException,
    ClockErrorCode.SESSION_TOO_SHORT: UnprocessableEntityException,
    ClockErrorCode.SESSION_TOO_LONG: UnprocessableEntityException,
    ClockErrorCode.DATABASE_ERROR: InternalServerException,
    ClockErrorCode.SERVICE_UNAVAILABLE: ServiceUnavailableException,
}


def to_exception(outcome: Err) -> AppException:
    exception_class = EXCEPTION_BY_CODE[outcome.code]
    return exception_class(
        outcome.error.message,
        details={"code": outcome.code.value, **outcome.error.details},
    )


def raise_for_error(outcome: Err) -> NoReturn:
    raise to_exception(outcome)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400 VALIDATION_ERROR, not 422"""
    errors = exc.errors()
    fields = [".".join(str(part) for part in err["loc"] if part != "body") for err in errors]
    return await app_exception_handler(
        request,
        BadRequestException(
            "; ".join(str(err["msg"]) for err in errors),
            details={"code": ClockErrorCode.VALIDATION_ERROR.value, "fields": fields},
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    setup_exception_handlers(app)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
