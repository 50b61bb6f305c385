"""
Site Reference Cache - read-through cache of site location and geofence policy
"""
import time
from typing import Callable, Optional

from atams.logging import get_logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.repositories.site_repository import SiteRepository
from app.schemas.site import SiteReference
from app.services.cache import ReadThroughCache

logger = get_logger(__name__)


class SiteReferenceCache:
    def __init__(
        self,
        repository: SiteRepository,
        session_factory: async_sessionmaker,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.session_factory = session_factory
        self._cache: ReadThroughCache[SiteReference] = ReadThroughCache(ttl_seconds, clock=clock)

    async def get_by_site_id(self, site_id: str) -> Optional[SiteReference]:
        async def load() -> Optional[SiteReference]:
            async with self.session_factory() as db:
                site = await self.repository.get_by_id(db, site_id)
                return self.repository.to_reference(site) if site else None

        return await self._cache.get_or_load(f"site:{site_id}", load, cache_none=False)

    async def get_by_rotation_id(self, rotation_id: str) -> Optional[SiteReference]:
        async def load() -> Optional[SiteReference]:
            async with self.session_factory() as db:
                site = await self.repository.get_by_rotation_id(db, rotation_id)
                return self.repository.to_reference(site) if site else None

        return await self._cache.get_or_load(f"rotation:{rotation_id}", load, cache_none=False)

    async def resolve(self, rotation_id: Optional[str], site_id: Optional[str]) -> Optional[SiteReference]:
        """Rotation takes precedence when both identifiers are given"""
        if rotation_id:
            return await self.get_by_rotation_id(rotation_id)
        return await self.get_by_site_id(site_id)

    def invalidate_site(self, site_id: str) -> int:
        """Evict a site and every rotation entry that resolved to it"""
        evicted = self._cache.invalidate_where(
            lambda key, ref: key == f"site:{site_id}" or ref.si_id == site_id
        )
        logger.info("Evicted %d cache entries for site %s", evicted, site_id)
        return evicted

    def clear(self) -> int:
        evicted = len(self._cache)
        self._cache.clear()
        logger.info("Cleared %d site cache entries", evicted)
        return evicted

    @property
    def stats(self) -> dict:
        return {"entries": len(self._cache), "hits": self._cache.hits, "misses": self._cache.misses}
