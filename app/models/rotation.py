"""
Rotation Model - Clinical assignments, each charged against one site
"""
from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from atams.db import Base


class Rotation(Base):
    """Rotation model - Table: rotations"""
    __tablename__ = "rotations"

    ro_id = Column(String(50), primary_key=True, index=True)
    ro_name = Column(String(255), nullable=True)
    ro_site_id = Column(String(50), ForeignKey("sites.si_id"), nullable=False, index=True)
    ro_created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
