"""
Circuit Breaker - per-operation failure isolation for datastore access

A breaker trips OPEN after a run of consecutive failures, rejects calls until
the recovery timeout elapses, then lets a single HALF_OPEN trial call through.
Breakers are held by a registry that the service receives at construction.
"""
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

from atams.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class Permit:
    """Admission to call through a breaker; a HALF_OPEN permit is the recovery trial"""
    __slots__ = ("trial",)

    def __init__(self, trial: bool = False) -> None:
        self.trial = trial


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._trial: Optional[Permit] = None
        self._total_requests = 0
        self._total_failures = 0
        self._total_rejections = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh_state()
            return self._state

    def _refresh_state(self) -> None:
        # Caller holds the lock
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            self._trial = None
            logger.info("Circuit breaker %s transitioning to HALF_OPEN", self.name)

    def allow_request(self) -> Optional[Permit]:
        """Return a permit if the caller may proceed, None if rejected; in HALF_OPEN only one trial call is admitted"""
        with self._lock:
            self._refresh_state()
            if self._state is CircuitState.OPEN:
                self._total_rejections += 1
                return None
            permit = Permit()
            if self._state is CircuitState.HALF_OPEN:
                if self._trial is not None:
                    self._total_rejections += 1
                    return None
                permit.trial = True
                self._trial = permit
            self._total_requests += 1
            return permit

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info("Circuit breaker %s recovered - state: CLOSED", self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._trial = None

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._total_failures += 1
            self._trial = None
            if self._state is CircuitState.HALF_OPEN:
                self._trip()
                logger.warning("Circuit breaker %s failed in HALF_OPEN - state: OPEN", self.name)
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._trip()
                logger.warning(
                    "Circuit breaker %s opened after %d consecutive failures",
                    self.name, self._failure_count,
                )

    def release(self, permit: Optional[Permit]) -> None:
        """Give back the trial slot held by this permit, if the call ended without recording an outcome"""
        with self._lock:
            if permit is not None and permit is self._trial:
                self._trial = None

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._trial = None
        logger.info("Circuit breaker %s reset - state: CLOSED", self.name)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            self._refresh_state()
            retry_in = None
            if self._state is CircuitState.OPEN:
                retry_in = max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "total_requests": self._total_requests,
                "total_failures": self._total_failures,
                "total_rejections": self._total_rejections,
                "retry_in_seconds": retry_in,
            }


class CircuitBreakerRegistry:
    """Breakers keyed by logical operation name, created on first use"""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    failure_threshold=self.failure_threshold,
                    recovery_timeout=self.recovery_timeout,
                    clock=self._clock,
                )
                self._breakers[name] = breaker
            return breaker

    def stats(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.stats() for b in breakers}

    def reset(self, name: str) -> bool:
        """Force a breaker back to CLOSED; False if no breaker of that name exists yet"""
        with self._lock:
            breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True
