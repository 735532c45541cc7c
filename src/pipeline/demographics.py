"""Demographic / economic indicator cache keyed by rounded coordinate."""

import logging
from datetime import timedelta
from typing import Any

from src.domain.interfaces.cache_store import CacheStoreProtocol
from src.infrastructure.persistence.cache_store import DEMOGRAPHIC_NAMESPACE
from src.shared.constants import DEMOGRAPHIC_TTL
from src.shared.geo import coordinate_cache_key

logger = logging.getLogger(__name__)


class DemographicIndicatorCache:
    """
    Indicators (population, income index, ...) per ~110 m cell.

    Usage:
        cache = DemographicIndicatorCache(store)
        await cache.put(52.52, 13.405, {"population": 120000})
        indicators = await cache.get(52.5201, 13.4049)
    """

    def __init__(self, store: CacheStoreProtocol, ttl: timedelta = DEMOGRAPHIC_TTL):
        self.store = store
        self.ttl = ttl

    async def get(self, lat: float, lng: float) -> dict[str, Any] | None:
        return await self.store.get(DEMOGRAPHIC_NAMESPACE, coordinate_cache_key(lat, lng))

    async def put(self, lat: float, lng: float, indicators: dict[str, Any]) -> None:
        await self.store.put(
            DEMOGRAPHIC_NAMESPACE, coordinate_cache_key(lat, lng), indicators, self.ttl
        )
        logger.debug(f"Cached demographic indicators at {lat:.3f},{lng:.3f}")
