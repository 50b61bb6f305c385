"""
Geofence validation - great-circle distance and proximity classification
"""
import math
from dataclasses import dataclass, field
from typing import List

from app.schemas.attendance import LocationFix
from app.schemas.site import SiteReference

EARTH_RADIUS_M = 6371000
NEAR_BOUNDARY_RATIO = 0.8


@dataclass(frozen=True)
class GeofenceResult:
    within_range: bool
    distance_m: float
    allowed_radius_m: float
    strict: bool
    accuracy_level: str
    warnings: List[str] = field(default_factory=list)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two coordinates using Haversine formula

    Returns:
        float: Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def classify_accuracy(accuracy_m: float) -> str:
    if accuracy_m <= 10:
        return "high"
    if accuracy_m <= 50:
        return "medium"
    return "low"


def effective_radius(site: SiteReference, accuracy_m: float, strict: bool) -> float:
    """Strict sites require the whole uncertainty circle of the fix to lie inside the fence"""
    if not strict:
        return float(site.geofence_radius_m)
    return max(0.0, site.geofence_radius_m - accuracy_m)


def validate_geofence(location: LocationFix, site: SiteReference, strict_mode: bool = False) -> GeofenceResult:
    """
    Classify a location fix against a site's circular geofence

    Args:
        location: Device-reported fix (already range-checked)
        site: Site reference with coordinates
        strict_mode: Global strict switch, combined with the site's own flag

    Returns:
        GeofenceResult: distance is rounded to centimetres before comparison
    """
    strict = strict_mode or site.strict_geofence
    distance = round(haversine_distance(
        site.latitude, site.longitude,
        location.latitude, location.longitude
    ), 2)
    allowed = effective_radius(site, location.accuracy_m, strict)
    within_range = distance <= allowed

    warnings = []
    if within_range and distance > allowed * NEAR_BOUNDARY_RATIO:
        warnings.append("near_boundary")

    return GeofenceResult(
        within_range=within_range,
        distance_m=distance,
        allowed_radius_m=allowed,
        strict=strict,
        accuracy_level=classify_accuracy(location.accuracy_m),
        warnings=warnings,
    )
