"""
Site Schemas - geofence definition and the read-only site reference used by clocking
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class GeoFence(BaseModel):
    """Geofence data structure stored in sites.si_geo_fence"""
    type: str = "circle"
    center: List[float] = Field(min_length=2, max_length=2)  # [latitude, longitude]
    radius_m: Optional[int] = Field(default=None, gt=0)


class SiteReference(BaseModel):
    """Location and geofence policy of a clinical site, as seen by clock operations"""
    model_config = ConfigDict(frozen=True)

    si_id: str
    si_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geofence_radius_m: int
    strict_geofence: bool = False

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
