"""
Site Repository - Data access layer for clinical sites and rotations
"""
from typing import Optional

from atams.logging import get_logger
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.rotation import Rotation
from app.models.site import Site
from app.schemas.site import GeoFence, SiteReference

logger = get_logger(__name__)


class SiteRepository:
    def __init__(self, default_radius_m: int = 100):
        self.default_radius_m = default_radius_m

    async def get_by_id(self, db: AsyncSession, site_id: str) -> Optional[Site]:
        """Get site by ID using ORM"""
        result = await db.execute(select(Site).where(Site.si_id == site_id))
        return result.scalars().first()

    async def get_by_rotation_id(self, db: AsyncSession, rotation_id: str) -> Optional[Site]:
        """Get the site a rotation is charged against"""
        result = await db.execute(
            select(Site)
            .join(Rotation, Rotation.ro_site_id == Site.si_id)
            .where(Rotation.ro_id == rotation_id)
        )
        return result.scalars().first()

    def to_reference(self, site: Site) -> SiteReference:
        latitude = longitude = None
        radius_m = self.default_radius_m

        if site.si_geo_fence:
            try:
                geo_fence = GeoFence.model_validate(site.si_geo_fence)
            except ValidationError:
                logger.warning("Ignoring malformed geofence for site %s", site.si_id)
                geo_fence = None

            if geo_fence is not None and geo_fence.type != "circle":
                logger.warning("Unsupported geofence type %r for site %s", geo_fence.type, site.si_id)
            elif geo_fence is not None:
                latitude, longitude = geo_fence.center
                if geo_fence.radius_m:
                    radius_m = geo_fence.radius_m

        return SiteReference(
            si_id=site.si_id,
            si_name=site.si_name,
            latitude=latitude,
            longitude=longitude,
            geofence_radius_m=radius_m,
            strict_geofence=bool(site.si_strict_geofence),
        )
