"""
Attendance Endpoints - clock-in, clock-out and live clock status
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from app.api.deps import get_clock_service, get_settings, require_auth, resolve_student_id
from app.api.errors import raise_for_error
from app.core.config import Settings
from app.core.errors import Err
from app.schemas import (
    ClockInBody,
    ClockOutBody,
    ClockInResult,
    ClockOutResult,
    ClockStatus,
    DataResponse
)
from app.services.clock_service import ClockService

router = APIRouter()


@router.post(
    "/clock-in",
    response_model=DataResponse[ClockInResult],
    status_code=status.HTTP_201_CREATED
)
async def clock_in(
    body: ClockInBody,
    current_user: Dict[str, Any] = Depends(require_auth),
    settings: Settings = Depends(get_settings),
    service: ClockService = Depends(get_clock_service)
):
    """
    Open an attendance session at the rotation's clinical site

    **Authentication:**
    - Bearer token; student_id defaults to the caller
    - Preceptors and school admins may clock in on behalf of a student

    **Process:**
    1. Reject future timestamps and coarse location fixes
    2. Resolve the site from rotation_id (or site_id)
    3. Geofence check when a location is supplied and the site has coordinates
    4. Create the ACTIVE record, at most one per student

    **Errors:**
    - 400: Validation error, future timestamp, accuracy too low
    - 403: Outside geofence
    - 409: Already clocked in
    - 503: Circuit breaker open
    """
    student_id = resolve_student_id(body.student_id, current_user, settings)
    outcome = await service.clock_in({**body.model_dump(), "student_id": student_id})
    if isinstance(outcome, Err):
        raise_for_error(outcome)

    return DataResponse(
        success=True,
        message="Clocked in successfully",
        data=outcome.value
    )


@router.post(
    "/clock-out",
    response_model=DataResponse[ClockOutResult],
    status_code=status.HTTP_200_OK
)
async def clock_out(
    body: ClockOutBody,
    current_user: Dict[str, Any] = Depends(require_auth),
    settings: Settings = Depends(get_settings),
    service: ClockService = Depends(get_clock_service)
):
    """
    Close the caller's active session and record total hours

    **Errors:**
    - 404: No active session
    - 422: Session shorter than the minimum or longer than the maximum
    - 503: Circuit breaker open
    """
    student_id = resolve_student_id(body.student_id, current_user, settings)
    outcome = await service.clock_out({**body.model_dump(), "student_id": student_id})
    if isinstance(outcome, Err):
        raise_for_error(outcome)

    return DataResponse(
        success=True,
        message="Clocked out successfully",
        data=outcome.value
    )


@router.get(
    "/status",
    response_model=DataResponse[ClockStatus],
    status_code=status.HTTP_200_OK
)
async def get_my_status(
    current_user: Dict[str, Any] = Depends(require_auth),
    service: ClockService = Depends(get_clock_service)
):
    """Current clock status of the caller"""
    outcome = await service.get_clock_status(current_user["user_id"])
    if isinstance(outcome, Err):
        raise_for_error(outcome)

    return DataResponse(
        success=True,
        message="Clock status retrieved successfully",
        data=outcome.value
    )


@router.get(
    "/status/{student_id}",
    response_model=DataResponse[ClockStatus],
    status_code=status.HTTP_200_OK
)
async def get_student_status(
    student_id: str,
    current_user: Dict[str, Any] = Depends(require_auth),
    settings: Settings = Depends(get_settings),
    service: ClockService = Depends(get_clock_service)
):
    """Current clock status of a student (self, or any student for proxy roles)"""
    student_id = resolve_student_id(student_id, current_user, settings)
    outcome = await service.get_clock_status(student_id)
    if isinstance(outcome, Err):
        raise_for_error(outcome)

    return DataResponse(
        success=True,
        message="Clock status retrieved successfully",
        data=outcome.value
    )
