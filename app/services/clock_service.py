"""
Clock Service - clock-in, clock-out and status for clinical attendance

Every operation returns ``Ok(result)`` or ``Err(ClockError)``. Business
rejections never touch the circuit breakers; datastore failures and timeouts
are rolled back at the transaction boundary, reported as DATABASE_ERROR and
counted against the breaker of the operation that hit them.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union

from atams.logging import get_logger
from pydantic import BaseModel, ValidationError

from app.core.config import Settings
from app.core.errors import ClockErrorCode, Err, Ok, Result, fail
from app.models.attendance_record import (
    SOURCE_GPS,
    SOURCE_MANUAL,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    generate_record_id,
)
from app.repositories.attendance_record_repository import ActiveSessionConflict, AttendanceStateStore
from app.schemas.attendance import (
    AttendanceRecord,
    ClockInRequest,
    ClockInResult,
    ClockOutRequest,
    ClockOutResult,
    ClockStatus,
)
from app.schemas.site import SiteReference
from app.services.cache import ReadThroughCache
from app.services.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from app.services.geofence import classify_accuracy, validate_geofence
from app.services.site_cache import SiteReferenceCache
from app.utils.datetime_utils import utcnow

logger = get_logger(__name__)

OP_CLOCK_IN = "clockIn"
OP_CLOCK_OUT = "clockOut"
OP_SITE_LOOKUP = "siteLookup"

HOURS = Decimal(3600)
TWO_PLACES = Decimal("0.01")

RequestT = TypeVar("RequestT", bound=BaseModel)


@dataclass(frozen=True)
class ClockPolicy:
    max_location_accuracy_m: float = 500.0
    clock_skew_tolerance: timedelta = timedelta(seconds=30)
    max_past: Optional[timedelta] = None
    min_session: timedelta = timedelta(minutes=5)
    max_session: timedelta = timedelta(hours=24)
    strict_geofence: bool = False
    operation_timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClockPolicy":
        return cls(
            max_location_accuracy_m=settings.MAX_LOCATION_ACCURACY_M,
            clock_skew_tolerance=timedelta(seconds=settings.CLOCK_SKEW_TOLERANCE_SECONDS),
            max_past=(
                timedelta(seconds=settings.MAX_PAST_TIMESTAMP_SECONDS)
                if settings.MAX_PAST_TIMESTAMP_SECONDS is not None else None
            ),
            min_session=timedelta(minutes=settings.MIN_SESSION_MINUTES),
            max_session=timedelta(hours=settings.MAX_SESSION_HOURS),
            strict_geofence=settings.GEOFENCE_STRICT_MODE,
            operation_timeout_seconds=settings.OPERATION_TIMEOUT_SECONDS,
        )


class _Rejected(Exception):
    """Carries a business rejection out of a transaction so that it rolls back"""

    def __init__(self, outcome: Err):
        super().__init__(outcome.error.message)
        self.outcome = outcome


def compute_total_hours(duration: timedelta) -> Decimal:
    seconds = Decimal(str(duration.total_seconds()))
    return max(Decimal("0.00"), (seconds / HOURS).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


class ClockService:
    def __init__(
        self,
        store: AttendanceStateStore,
        site_cache: SiteReferenceCache,
        breakers: CircuitBreakerRegistry,
        status_cache: ReadThroughCache[Optional[AttendanceRecord]],
        policy: Optional[ClockPolicy] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.site_cache = site_cache
        self.breakers = breakers
        self.status_cache = status_cache
        self.policy = policy or ClockPolicy()
        self.now = now

    # ------------------------------------------------------------------
    # clock in
    # ------------------------------------------------------------------

    async def clock_in(self, request: Union[ClockInRequest, Dict[str, Any]]) -> Result[ClockInResult]:
        """
        Open an attendance session for a student

        Checks, first failure wins: request shape, clockIn breaker, future
        timestamp, fix accuracy, site resolution, geofence, then the locked
        "no ACTIVE record" check and insert.
        """
        parsed = self._parse(ClockInRequest, request)
        if isinstance(parsed, Err):
            return parsed

        breaker = self.breakers.get(OP_CLOCK_IN)
        permit = breaker.allow_request()
        if permit is None:
            return self._unavailable(OP_CLOCK_IN)
        try:
            return await self._clock_in(parsed, breaker)
        finally:
            breaker.release(permit)

    async def _clock_in(self, req: ClockInRequest, breaker: CircuitBreaker) -> Result[ClockInResult]:
        logger.info("Clock-in started for student %s", req.student_id)

        stale = self._check_timestamp(req.timestamp)
        if stale is not None:
            return self._reject(stale, req.student_id)

        if req.location is not None and req.location.accuracy_m > self.policy.max_location_accuracy_m:
            return self._reject(
                fail(
                    ClockErrorCode.LOCATION_ACCURACY_TOO_LOW,
                    f"Location accuracy {req.location.accuracy_m:.0f}m is too coarse "
                    f"(maximum {self.policy.max_location_accuracy_m:.0f}m)",
                    accuracy_m=req.location.accuracy_m,
                    max_accuracy_m=self.policy.max_location_accuracy_m,
                ),
                req.student_id,
            )

        resolved = await self._resolve_site(req)
        if isinstance(resolved, Err):
            return resolved
        site = resolved.value

        warnings = []
        distance_m = None
        accuracy_level = classify_accuracy(req.location.accuracy_m) if req.location is not None else None
        if req.location is not None and site.has_coordinates:
            geofence = validate_geofence(req.location, site, strict_mode=self.policy.strict_geofence)
            if not geofence.within_range:
                return self._reject(
                    fail(
                        ClockErrorCode.LOCATION_TOO_FAR,
                        f"Out of geofence (distance: {geofence.distance_m:.0f}m, "
                        f"allowed: {geofence.allowed_radius_m:.0f}m)",
                        distance_m=geofence.distance_m,
                        allowed_radius_m=geofence.allowed_radius_m,
                        strict=geofence.strict,
                    ),
                    req.student_id,
                )
            distance_m = geofence.distance_m
            accuracy_level = geofence.accuracy_level
            warnings.extend(geofence.warnings)
            if geofence.warnings:
                logger.info(
                    "Clock-in for student %s is %.1fm from site %s with %s accuracy (%s)",
                    req.student_id, geofence.distance_m, site.si_id, accuracy_level, ", ".join(geofence.warnings),
                )

        source = SOURCE_GPS if req.location is not None else SOURCE_MANUAL
        if source == SOURCE_MANUAL:
            warnings.append("location_unverified")

        data = {
            "ar_id": generate_record_id(),
            "ar_student_id": req.student_id,
            "ar_rotation_id": req.rotation_id,
            "ar_site_id": site.si_id,
            "ar_clock_in_at": req.timestamp,
            "ar_status": STATUS_ACTIVE,
            "ar_location_source": source,
            "ar_requires_review": source == SOURCE_MANUAL,
            "ar_clock_in_lat": req.location.latitude if req.location else None,
            "ar_clock_in_lon": req.location.longitude if req.location else None,
            "ar_clock_in_accuracy_m": req.location.accuracy_m if req.location else None,
            "ar_clock_in_distance_m": distance_m,
            "ar_clock_in_accuracy_level": accuracy_level,
            "ar_notes": req.notes,
        }

        outcome = await self._run_transaction(OP_CLOCK_IN, breaker, self._open_session(req.student_id, data))
        if isinstance(outcome, Err):
            return self._reject(outcome, req.student_id)

        record = outcome.value
        self._invalidate_status(req.student_id)
        logger.info("Clock-in completed for student %s: record %s at site %s", req.student_id, record.ar_id, site.si_id)
        return Ok(ClockInResult(
            ar_id=record.ar_id,
            ar_clock_in_at=record.ar_clock_in_at,
            ar_location_source=record.ar_location_source,
            site=site,
            distance_m=distance_m,
            accuracy_level=accuracy_level,
            warnings=warnings,
        ))

    async def _open_session(self, student_id: str, data: Dict[str, Any]) -> AttendanceRecord:
        async with self.store.transaction() as tx:
            existing = await self.store.lock_active_session_for_student(tx, student_id)
            if existing is not None:
                raise _Rejected(fail(
                    ClockErrorCode.ALREADY_CLOCKED_IN,
                    "Student already has an active attendance session",
                    ar_id=existing.ar_id,
                ))
            try:
                return await self.store.insert(tx, data)
            except ActiveSessionConflict:
                raise _Rejected(fail(
                    ClockErrorCode.ALREADY_CLOCKED_IN,
                    "Student already has an active attendance session",
                ))

    async def _resolve_site(self, req: ClockInRequest) -> Result[SiteReference]:
        breaker = self.breakers.get(OP_SITE_LOOKUP)
        permit = breaker.allow_request()
        if permit is None:
            return self._unavailable(OP_SITE_LOOKUP)
        try:
            site = await asyncio.wait_for(
                self.site_cache.resolve(req.rotation_id, req.site_id),
                timeout=self.policy.operation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            breaker.record_failure()
            logger.error("Site lookup timed out for rotation=%s site=%s", req.rotation_id, req.site_id)
            return fail(ClockErrorCode.DATABASE_ERROR, "Site lookup timed out", reason="timeout")
        except Exception:
            breaker.record_failure()
            logger.exception("Site lookup failed for rotation=%s site=%s", req.rotation_id, req.site_id)
            return fail(ClockErrorCode.DATABASE_ERROR, "Site lookup failed")
        finally:
            breaker.release(permit)

        breaker.record_success()
        if site is None:
            field = "rotation_id" if req.rotation_id else "site_id"
            return self._reject(
                fail(ClockErrorCode.VALIDATION_ERROR, f"Unknown {field}", fields=[field]),
                req.student_id,
            )
        return Ok(site)

    # ------------------------------------------------------------------
    # clock out
    # ------------------------------------------------------------------

    async def clock_out(self, request: Union[ClockOutRequest, Dict[str, Any]]) -> Result[ClockOutResult]:
        """Close the student's active session (or the given one) and compute total hours"""
        parsed = self._parse(ClockOutRequest, request)
        if isinstance(parsed, Err):
            return parsed

        breaker = self.breakers.get(OP_CLOCK_OUT)
        permit = breaker.allow_request()
        if permit is None:
            return self._unavailable(OP_CLOCK_OUT)
        try:
            return await self._clock_out(parsed, breaker)
        finally:
            breaker.release(permit)

    async def _clock_out(self, req: ClockOutRequest, breaker: CircuitBreaker) -> Result[ClockOutResult]:
        logger.info("Clock-out started for student %s", req.student_id)

        stale = self._check_timestamp(req.timestamp)
        if stale is not None:
            return self._reject(stale, req.student_id)

        outcome = await self._run_transaction(OP_CLOCK_OUT, breaker, self._close_session(req))
        if isinstance(outcome, Err):
            return self._reject(outcome, req.student_id)

        record, total_hours = outcome.value
        self._invalidate_status(req.student_id)
        logger.info(
            "Clock-out completed for student %s: record %s, %s hours",
            req.student_id, record.ar_id, total_hours,
        )
        return Ok(ClockOutResult(
            ar_id=record.ar_id,
            ar_clock_out_at=req.timestamp,
            ar_total_hours=total_hours,
        ))

    async def _close_session(self, req: ClockOutRequest):
        async with self.store.transaction() as tx:
            if req.time_record_id:
                record = await self.store.lock_session_by_id(tx, req.student_id, req.time_record_id)
            else:
                record = await self.store.lock_active_session_for_student(tx, req.student_id)
            if record is None:
                raise _Rejected(fail(ClockErrorCode.NO_ACTIVE_SESSION, "No active attendance session found"))

            duration = req.timestamp - record.ar_clock_in_at
            if duration < self.policy.min_session:
                raise _Rejected(fail(
                    ClockErrorCode.SESSION_TOO_SHORT,
                    f"Minimum session duration is {self._minutes(self.policy.min_session)} minutes",
                    ar_id=record.ar_id,
                    duration_seconds=int(duration.total_seconds()),
                ))
            if duration > self.policy.max_session:
                raise _Rejected(fail(
                    ClockErrorCode.SESSION_TOO_LONG,
                    f"Maximum session duration is {self._minutes(self.policy.max_session) // 60} hours",
                    ar_id=record.ar_id,
                    duration_seconds=int(duration.total_seconds()),
                ))

            total_hours = compute_total_hours(duration)
            notes = record.ar_notes
            if req.notes:
                notes = f"{notes}\n{req.notes}" if notes else req.notes
            patch = {
                "ar_clock_out_at": req.timestamp,
                "ar_total_hours": total_hours,
                "ar_status": STATUS_COMPLETED,
                "ar_clock_out_lat": req.location.latitude if req.location else None,
                "ar_clock_out_lon": req.location.longitude if req.location else None,
                "ar_clock_out_accuracy_m": req.location.accuracy_m if req.location else None,
                "ar_notes": notes,
            }
            updated = await self.store.update(tx, record.ar_id, patch)
            return updated, total_hours

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    async def get_clock_status(self, student_id: str) -> Result[ClockStatus]:
        """Best-effort snapshot of the student's open session; never takes the row lock"""
        if not student_id or not student_id.strip():
            return fail(ClockErrorCode.VALIDATION_ERROR, "student_id is required", fields=["student_id"])

        try:
            record = await self.status_cache.get_or_load(
                student_id, lambda: self.store.find_active_session(student_id)
            )
        except Exception:
            logger.exception("Failed to get clock status for student %s", student_id)
            return fail(ClockErrorCode.DATABASE_ERROR, "Failed to get clock status")

        if record is None:
            return Ok(ClockStatus(is_active=False))

        elapsed = self.now() - record.ar_clock_in_at
        site = await self._current_site(record.ar_site_id)
        return Ok(ClockStatus(
            is_active=True,
            ar_id=record.ar_id,
            si_id=record.ar_site_id,
            si_name=site.si_name if site else None,
            ar_clock_in_at=record.ar_clock_in_at,
            current_duration_seconds=max(0, int(elapsed.total_seconds())),
        ))

    async def _current_site(self, site_id: str) -> Optional[SiteReference]:
        try:
            return await self.site_cache.get_by_site_id(site_id)
        except Exception:
            # Status stands without the site name
            logger.warning("Failed to look up site %s for clock status", site_id, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _run_transaction(self, operation: str, breaker: CircuitBreaker, work) -> Result[Any]:
        """Run a transactional coroutine under the operation timeout and feed the breaker"""
        try:
            value = await asyncio.wait_for(work, timeout=self.policy.operation_timeout_seconds)
        except _Rejected as rejected:
            breaker.record_success()
            return rejected.outcome
        except asyncio.TimeoutError:
            breaker.record_failure()
            logger.error("%s transaction timed out after %.1fs", operation, self.policy.operation_timeout_seconds)
            return fail(ClockErrorCode.DATABASE_ERROR, f"{operation} timed out", reason="timeout")
        except Exception:
            breaker.record_failure()
            logger.exception("%s transaction failed", operation)
            return fail(ClockErrorCode.DATABASE_ERROR, f"{operation} failed")
        breaker.record_success()
        return Ok(value)

    def _parse(self, model: Type[RequestT], request: Union[RequestT, Dict[str, Any]]) -> Union[RequestT, Err]:
        if isinstance(request, model):
            return request
        try:
            return model.model_validate(request)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            fields = [".".join(str(part) for part in err["loc"]) or "__root__" for err in errors]
            return fail(
                ClockErrorCode.VALIDATION_ERROR,
                "; ".join(err["msg"] for err in errors),
                fields=fields,
            )

    def _check_timestamp(self, timestamp: datetime) -> Optional[Err]:
        now = self.now()
        if timestamp > now + self.policy.clock_skew_tolerance:
            return fail(
                ClockErrorCode.FUTURE_TIMESTAMP,
                "Timestamp is in the future",
                timestamp=timestamp.isoformat(),
                server_time=now.isoformat(),
            )
        if self.policy.max_past is not None and timestamp < now - self.policy.max_past:
            return fail(
                ClockErrorCode.VALIDATION_ERROR,
                f"Timestamp is more than {int(self.policy.max_past.total_seconds())}s in the past",
                fields=["timestamp"],
                timestamp=timestamp.isoformat(),
                server_time=now.isoformat(),
            )
        return None

    def _invalidate_status(self, student_id: str) -> None:
        try:
            self.status_cache.invalidate(student_id)
        except Exception:
            # The row mutation already committed; a stale status view expires with its TTL
            logger.warning("Failed to invalidate clock status cache for student %s", student_id, exc_info=True)

    def _unavailable(self, operation: str) -> Err:
        logger.warning("Rejecting %s: circuit breaker is open", operation)
        return fail(
            ClockErrorCode.SERVICE_UNAVAILABLE,
            "Attendance service is temporarily unavailable, please retry shortly",
            operation=operation,
        )

    @staticmethod
    def _reject(outcome: Err, student_id: str) -> Err:
        if outcome.error.is_business_outcome:
            logger.info("Clock request for student %s rejected: %s", student_id, outcome.code.value)
        return outcome

    @staticmethod
    def _minutes(value: timedelta) -> int:
        return int(value.total_seconds() // 60)


def build_clock_service(settings: Settings, session_factory) -> ClockService:
    """Wire the process-wide store, caches and breaker registry from settings"""
    from app.repositories.attendance_record_repository import AttendanceRecordRepository
    from app.repositories.site_repository import SiteRepository

    site_cache = SiteReferenceCache(
        SiteRepository(default_radius_m=settings.DEFAULT_GEOFENCE_RADIUS_M),
        session_factory,
        ttl_seconds=settings.SITE_CACHE_TTL_SECONDS,
    )
    breakers = CircuitBreakerRegistry(
        failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_RECOVERY_SECONDS,
    )
    return ClockService(
        store=AttendanceRecordRepository(session_factory),
        site_cache=site_cache,
        breakers=breakers,
        status_cache=ReadThroughCache(settings.STATUS_CACHE_TTL_SECONDS),
        policy=ClockPolicy.from_settings(settings),
    )
