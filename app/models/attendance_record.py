"""
Attendance Record Model - One clock-in to clock-out session
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.sql import func

from atams.db import Base

STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"

SOURCE_GPS = "gps"
SOURCE_MANUAL = "manual"


def generate_record_id() -> str:
    return str(uuid.uuid4())


class AttendanceRecord(Base):
    """Attendance Record model - Table: attendance_records"""
    __tablename__ = "attendance_records"
    __table_args__ = (
        # Backstop for the one-active-session rule; the row lock is the primary guard
        Index(
            "uq_attendance_records_one_active",
            "ar_student_id",
            unique=True,
            postgresql_where=text("ar_status = 'ACTIVE'"),
            sqlite_where=text("ar_status = 'ACTIVE'"),
        ),
    )

    ar_id = Column(String(36), primary_key=True, default=generate_record_id)
    ar_student_id = Column(String(64), nullable=False, index=True)
    ar_rotation_id = Column(String(50), ForeignKey("rotations.ro_id"), nullable=True, index=True)
    ar_site_id = Column(String(50), ForeignKey("sites.si_id"), nullable=False, index=True)
    ar_clock_in_at = Column(DateTime(timezone=True), nullable=False)
    ar_clock_out_at = Column(DateTime(timezone=True), nullable=True)
    ar_total_hours = Column(Numeric(6, 2), nullable=True)
    ar_status = Column(String(10), nullable=False, default=STATUS_ACTIVE)  # 'ACTIVE' or 'COMPLETED'
    ar_location_source = Column(String(10), nullable=False, default=SOURCE_MANUAL)  # 'gps' or 'manual'
    ar_requires_review = Column(Boolean, nullable=False, default=False)
    ar_clock_in_lat = Column(Float, nullable=True)
    ar_clock_in_lon = Column(Float, nullable=True)
    ar_clock_in_accuracy_m = Column(Float, nullable=True)
    ar_clock_in_accuracy_level = Column(String(10), nullable=True)  # "high", "medium" or "low"
    ar_clock_in_distance_m = Column(Float, nullable=True)
    ar_clock_out_lat = Column(Float, nullable=True)
    ar_clock_out_lon = Column(Float, nullable=True)
    ar_clock_out_accuracy_m = Column(Float, nullable=True)
    ar_notes = Column(Text, nullable=True)
    ar_created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ar_updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
