from .site_repository import SiteRepository
from .attendance_record_repository import (
    ActiveSessionConflict,
    AttendanceStateStore,
    AttendanceRecordRepository
)

__all__ = [
    "SiteRepository",
    "ActiveSessionConflict",
    "AttendanceStateStore",
    "AttendanceRecordRepository"
]
