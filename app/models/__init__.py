from .site import Site
from .rotation import Rotation
from .attendance_record import AttendanceRecord

__all__ = [
    "Site",
    "Rotation",
    "AttendanceRecord"
]
