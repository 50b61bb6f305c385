"""
Typed clock errors and the result type returned by every clock operation
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, TypeVar, Union

T = TypeVar("T")


class ClockErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ALREADY_CLOCKED_IN = "ALREADY_CLOCKED_IN"
    NO_ACTIVE_SESSION = "NO_ACTIVE_SESSION"
    LOCATION_TOO_FAR = "LOCATION_TOO_FAR"
    LOCATION_ACCURACY_TOO_LOW = "LOCATION_ACCURACY_TOO_LOW"
    FUTURE_TIMESTAMP = "FUTURE_TIMESTAMP"
    SESSION_TOO_SHORT = "SESSION_TOO_SHORT"
    SESSION_TOO_LONG = "SESSION_TOO_LONG"
    DATABASE_ERROR = "DATABASE_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# Codes that describe infrastructure health rather than a business outcome
INFRASTRUCTURE_CODES = frozenset({
    ClockErrorCode.DATABASE_ERROR,
    ClockErrorCode.SERVICE_UNAVAILABLE,
})


@dataclass(frozen=True)
class ClockError:
    code: ClockErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_business_outcome(self) -> bool:
        return self.code not in INFRASTRUCTURE_CODES

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ClockError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def code(self) -> ClockErrorCode:
        return self.error.code


Result = Union[Ok[T], Err]


def fail(code: ClockErrorCode, message: str, **details: Any) -> Err:
    return Err(ClockError(code=code, message=message, details=details))
