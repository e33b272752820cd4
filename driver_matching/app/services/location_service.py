"""
Driver location service.

Cache-aside orchestration around the location store. Reads try the
proximity cache first and populate it after a store round-trip; every
successful mutation drops the driver's own entry and all nearby-search
entries. Cache failures are logged and never fail a request.
"""

import logging
import math
from typing import List, Optional

from driver_matching.app.core.exceptions import CacheError, StorageError, ValidationError
from driver_matching.app.schemas.driver import Driver, Point, RankedDriver, SearchQuery
from driver_matching.app.services.interfaces import LocationStore, ProximityCache

logger = logging.getLogger("driver_matching.location_service")

DRIVER_CACHE_TTL_SECONDS = 60
NEARBY_CACHE_TTL_SECONDS = 60
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 100
MAX_SEARCH_RADIUS = 50000.0


def _require_id(driver_id: Optional[str]) -> str:
    if driver_id is None or not driver_id.strip():
        raise ValidationError("Driver ID is required")
    return driver_id.strip()


def _validate_point(point: Point) -> None:
    # Points are validated on construction; this catches model_construct() bypasses.
    if point.type != "Point" or len(point.coordinates) != 2:
        raise ValidationError("Location must be a GeoJSON Point")
    longitude, latitude = point.coordinates
    if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValidationError(
            "Coordinates are invalid (longitude: -180 to 180, latitude: -90 to 90)",
            details={"coordinates": [longitude, latitude]},
        )


class LocationService:
    """
    Entry point for every driver read and write.

    The store is the source of truth; the cache is optional and only
    ever holds copies.
    """

    def __init__(
        self,
        store: LocationStore,
        cache: Optional[ProximityCache] = None,
        driver_ttl_seconds: int = DRIVER_CACHE_TTL_SECONDS,
        nearby_ttl_seconds: int = NEARBY_CACHE_TTL_SECONDS,
        default_limit: int = DEFAULT_SEARCH_LIMIT,
        max_limit: int = MAX_SEARCH_LIMIT,
        max_radius: float = MAX_SEARCH_RADIUS,
    ):
        self.store = store
        self.cache = cache
        self.driver_ttl_seconds = driver_ttl_seconds
        self.nearby_ttl_seconds = nearby_ttl_seconds
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.max_radius = max_radius

    # Reads

    async def search_nearby_drivers(self, query: SearchQuery) -> List[RankedDriver]:
        """
        Drivers within query.radius of query.location, nearest first.

        Returns cached results when present; otherwise queries the store
        and caches what it returned before handing it back.
        """
        self._validate_search(query)
        limit = self.effective_limit(query.limit)
        latitude = query.location.latitude
        longitude = query.location.longitude

        if self.cache is not None:
            try:
                cached = await self.cache.get_nearby(latitude, longitude, query.radius, limit)
            except CacheError as exc:
                logger.warning("Failed to get nearby drivers from cache: %s", exc.message)
            else:
                if cached is not None:
                    return cached

        drivers = await self.store.search_nearby(query.location, query.radius, limit)

        if self.cache is not None:
            try:
                await self.cache.set_nearby(latitude, longitude, query.radius, limit, drivers, self.nearby_ttl_seconds)
            except CacheError as exc:
                logger.warning("Failed to cache nearby drivers: %s", exc.message)

        return drivers

    async def get_driver(self, driver_id: str) -> Driver:
        driver_id = _require_id(driver_id)

        if self.cache is not None:
            try:
                cached = await self.cache.get_driver(driver_id)
            except CacheError as exc:
                logger.warning("Failed to get driver %s from cache: %s", driver_id, exc.message)
            else:
                if cached is not None:
                    return cached

        driver = await self.store.get_by_id(driver_id)

        if self.cache is not None:
            try:
                await self.cache.set_driver(driver_id, driver, self.driver_ttl_seconds)
            except CacheError as exc:
                logger.warning("Failed to cache driver %s: %s", driver_id, exc.message)

        return driver

    # Mutations

    async def create_driver(self, location: Point, driver_id: Optional[str] = None) -> Driver:
        _validate_point(location)
        driver_id = driver_id.strip() if driver_id and driver_id.strip() else None

        driver = await self.store.create(Driver(id=driver_id, location=location))
        await self._invalidate(driver.id)
        return driver

    async def batch_create_drivers(self, drivers: List[Driver]) -> List[Driver]:
        """
        Create many drivers at once.

        Partial success is possible: the returned list holds only the
        drivers the store accepted. Per-driver cache entries are not
        touched since new IDs have none.

        If the store fails partway through, drivers committed before the
        failure stay stored, so nearby entries are swept before the
        StorageError propagates.
        """
        if not drivers:
            raise ValidationError("At least one driver is required")
        for driver in drivers:
            _validate_point(driver.location)

        try:
            created = await self.store.batch_create(drivers)
        except StorageError:
            await self._invalidate(None)
            raise

        await self._invalidate(None)
        return created

    async def update_driver(self, driver: Driver) -> Driver:
        """Full replace of a driver's record by ID."""
        _require_id(driver.id)
        _validate_point(driver.location)

        updated = await self.store.update(driver)
        await self._invalidate(updated.id)
        return updated

    async def update_driver_location(self, driver_id: str, location: Point) -> Driver:
        driver_id = _require_id(driver_id)
        _validate_point(location)

        existing = await self.store.get_by_id(driver_id)
        updated = await self.store.update(existing.model_copy(update={"location": location}))
        await self._invalidate(driver_id)
        return updated

    async def delete_driver(self, driver_id: str) -> None:
        driver_id = _require_id(driver_id)

        await self.store.delete(driver_id)
        await self._invalidate(driver_id)

    # Health

    async def cache_healthy(self) -> Optional[bool]:
        """Cache liveness for operational visibility; None when no cache is configured."""
        if self.cache is None:
            return None
        return await self.cache.is_healthy()

    # Helpers

    def effective_limit(self, limit: Optional[int]) -> int:
        """Default for unset or non-positive limits, clamped to the maximum."""
        if limit is None or limit <= 0:
            return self.default_limit
        return min(limit, self.max_limit)

    def _validate_search(self, query: SearchQuery) -> None:
        _validate_point(query.location)
        if not math.isfinite(query.radius) or query.radius <= 0:
            raise ValidationError("Radius must be greater than 0", details={"radius": query.radius})
        if query.radius > self.max_radius:
            raise ValidationError(
                f"Radius must be at most {self.max_radius:g} meters",
                details={"radius": query.radius},
            )

    async def _invalidate(self, driver_id: Optional[str]) -> None:
        if self.cache is None:
            return

        if driver_id is not None:
            try:
                await self.cache.delete_driver(driver_id)
            except CacheError as exc:
                logger.warning("Failed to delete driver %s from cache: %s", driver_id, exc.message)

        try:
            await self.cache.invalidate_all_nearby()
        except CacheError as exc:
            logger.warning("Failed to invalidate nearby cache: %s", exc.message)
