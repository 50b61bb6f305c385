from .cache import ReadThroughCache
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from .site_cache import SiteReferenceCache
from .clock_service import ClockPolicy, ClockService

__all__ = [
    "ReadThroughCache",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "SiteReferenceCache",
    "ClockPolicy",
    "ClockService"
]
