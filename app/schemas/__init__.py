from .site import GeoFence, SiteReference
from .attendance import (
    LocationFix,
    ClockInBody,
    ClockInRequest,
    ClockOutBody,
    ClockOutRequest,
    AttendanceRecord,
    ClockInResult,
    ClockOutResult,
    ClockStatus
)
from atams.schemas import DataResponse

__all__ = [
    # Site schemas
    "GeoFence",
    "SiteReference",
    # Attendance schemas
    "LocationFix",
    "ClockInBody",
    "ClockInRequest",
    "ClockOutBody",
    "ClockOutRequest",
    "AttendanceRecord",
    "ClockInResult",
    "ClockOutResult",
    "ClockStatus",
    # Common schemas
    "DataResponse"
]
