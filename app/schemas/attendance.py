"""
Attendance Schemas for clock requests, results and stored records
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.schemas.site import SiteReference
from app.utils.datetime_utils import ensure_utc

NOTES_MAX_LENGTH = 500


class LocationFix(BaseModel):
    """Device-reported position"""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_m: float = Field(gt=0)


class ClockInBody(BaseModel):
    """Clock-in payload as posted by a client; student_id defaults to the caller"""
    model_config = ConfigDict(str_strip_whitespace=True)

    student_id: Optional[str] = None
    rotation_id: Optional[str] = None
    site_id: Optional[str] = None
    location: Optional[LocationFix] = None
    timestamp: datetime
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def require_assignment(self):
        if not self.rotation_id and not self.site_id:
            raise ValueError("Either rotation_id or site_id is required")
        return self


class ClockInRequest(ClockInBody):
    student_id: str = Field(min_length=1)


class ClockOutBody(BaseModel):
    """Clock-out payload as posted by a client; student_id defaults to the caller"""
    model_config = ConfigDict(str_strip_whitespace=True)

    student_id: Optional[str] = None
    time_record_id: Optional[str] = None
    location: Optional[LocationFix] = None
    timestamp: datetime
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ClockOutRequest(ClockOutBody):
    student_id: str = Field(min_length=1)


class AttendanceRecord(BaseModel):
    """Snapshot of an attendance_records row"""
    model_config = ConfigDict(from_attributes=True)

    ar_id: str
    ar_student_id: str
    ar_rotation_id: Optional[str] = None
    ar_site_id: str
    ar_clock_in_at: datetime
    ar_clock_out_at: Optional[datetime] = None
    ar_total_hours: Optional[Decimal] = None
    ar_status: Literal["ACTIVE", "COMPLETED"] = "ACTIVE"
    ar_location_source: Literal["gps", "manual"] = "manual"
    ar_requires_review: bool = False
    ar_clock_in_lat: Optional[float] = None
    ar_clock_in_lon: Optional[float] = None
    ar_clock_in_accuracy_m: Optional[float] = None
    ar_clock_in_accuracy_level: Optional[str] = None
    ar_clock_in_distance_m: Optional[float] = None
    ar_clock_out_lat: Optional[float] = None
    ar_clock_out_lon: Optional[float] = None
    ar_clock_out_accuracy_m: Optional[float] = None
    ar_notes: Optional[str] = None

    @field_validator("ar_clock_in_at", "ar_clock_out_at", mode="after")
    @classmethod
    def fix_datetime_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """SQLite returns naive datetimes; stored values are always UTC"""
        if v is None:
            return None
        return ensure_utc(v)


class ClockInResult(BaseModel):
    ar_id: str
    ar_status: Literal["ACTIVE"] = "ACTIVE"
    ar_clock_in_at: datetime
    ar_location_source: Literal["gps", "manual"]
    site: SiteReference
    distance_m: Optional[float] = None
    accuracy_level: Optional[Literal["high", "medium", "low"]] = None
    warnings: List[str] = []


class ClockOutResult(BaseModel):
    ar_id: str
    ar_status: Literal["COMPLETED"] = "COMPLETED"
    ar_clock_out_at: datetime
    ar_total_hours: Decimal


class ClockStatus(BaseModel):
    is_active: bool
    ar_id: Optional[str] = None
    si_id: Optional[str] = None
    si_name: Optional[str] = None
    ar_clock_in_at: Optional[datetime] = None
    current_duration_seconds: Optional[int] = None
