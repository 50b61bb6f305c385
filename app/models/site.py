"""
Site Model - Clinical site locations, owned by the facility-management service
"""
from sqlalchemy import Boolean, Column, DateTime, JSON, String
from sqlalchemy.sql import func

from atams.db import Base


class Site(Base):
    """Site model - Table: sites"""
    __tablename__ = "sites"

    si_id = Column(String(50), primary_key=True, index=True)
    si_name = Column(String(255), nullable=False)
    si_geo_fence = Column(JSON, nullable=True)  # {"type":"circle", "center":[40.71,-74.0], "radius_m":100}
    si_strict_geofence = Column(Boolean, nullable=False, default=False)
    si_created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    si_updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
