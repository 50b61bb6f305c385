"""
Maintenance Endpoints - circuit breaker health, breaker reset and site cache control
"""
from typing import Dict, List, Optional

from atams.exceptions import NotFoundException
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.api.deps import get_clock_service, require_admin
from app.schemas import DataResponse
from app.services.clock_service import ClockService

router = APIRouter()


class CircuitBreakerStats(BaseModel):
    """Snapshot of one circuit breaker"""
    name: str
    state: str
    failure_count: int
    failure_threshold: int
    total_requests: int
    total_failures: int
    total_rejections: int
    retry_in_seconds: Optional[float] = None


class SiteCacheInvalidation(BaseModel):
    si_id: Optional[str] = None


class SiteCacheInvalidationResult(BaseModel):
    """Site cache invalidation result"""
    invalidated_count: int
    message: str


@router.get(
    "/circuit-breakers",
    response_model=DataResponse[List[CircuitBreakerStats]],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)]
)
async def get_circuit_breakers(service: ClockService = Depends(get_clock_service)):
    """
    Report the state of every circuit breaker created so far

    **Authorization:**
    - Requires an administrator role
    """
    stats: Dict[str, Dict[str, object]] = service.breakers.stats()

    return DataResponse(
        success=True,
        message="Circuit breaker stats retrieved successfully",
        data=[CircuitBreakerStats(**s) for s in stats.values()]
    )


@router.post(
    "/circuit-breakers/{name}/reset",
    response_model=DataResponse[CircuitBreakerStats],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)]
)
async def reset_circuit_breaker(name: str, service: ClockService = Depends(get_clock_service)):
    """
    Force a circuit breaker back to CLOSED once the datastore is known to be healthy

    **Parameters:**
    - name: Breaker name (clockIn, clockOut or siteLookup)
    """
    if not service.breakers.reset(name):
        raise NotFoundException(f"Circuit breaker {name} not found")

    return DataResponse(
        success=True,
        message=f"Circuit breaker {name} reset",
        data=CircuitBreakerStats(**service.breakers.get(name).stats())
    )


@router.post(
    "/site-cache/invalidate",
    response_model=DataResponse[SiteCacheInvalidationResult],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)]
)
async def invalidate_site_cache(
    request: SiteCacheInvalidation,
    service: ClockService = Depends(get_clock_service)
):
    """
    Drop cached site references after a site's geofence was edited

    **Parameters:**
    - si_id: Site to invalidate; omit to clear the whole cache
    """
    if request.si_id:
        count = service.site_cache.invalidate_site(request.si_id)
        message = f"Invalidated {count} cached entries for site {request.si_id}"
    else:
        count = service.site_cache.clear()
        message = f"Cleared {count} cached site entries"

    return DataResponse(
        success=True,
        message="Site cache invalidated",
        data=SiteCacheInvalidationResult(invalidated_count=count, message=message)
    )
