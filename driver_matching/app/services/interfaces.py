"""
Capability interfaces between the matching pipeline's components.

Each component depends on one of these abstract classes instead of a
concrete implementation, so that any of them can be swapped for a test
double.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from driver_matching.app.schemas.driver import Driver, Point, RankedDriver


class LocationStore(ABC):
    """Durable driver records plus a radius-bounded nearest-neighbour query."""

    @abstractmethod
    async def create(self, driver: Driver) -> Driver:
        """Persist a driver, assigning an ID and timestamps. Returns the stored copy."""

    @abstractmethod
    async def batch_create(self, drivers: List[Driver]) -> List[Driver]:
        """Persist each driver independently. Returns the ones that were stored."""

    @abstractmethod
    async def search_nearby(self, center: Point, radius_meters: float, limit: int) -> List[RankedDriver]:
        """Drivers within radius of center, ascending by distance. limit <= 0 means no cap."""

    @abstractmethod
    async def get_by_id(self, driver_id: str) -> Driver:
        """Raises ResourceNotFoundError when absent."""

    @abstractmethod
    async def update(self, driver: Driver) -> Driver:
        """Full replace by ID. Raises ResourceNotFoundError when absent."""

    @abstractmethod
    async def delete(self, driver_id: str) -> None:
        """Raises ResourceNotFoundError when absent."""


class ProximityCache(ABC):
    """
    Best-effort cache for driver records and nearby-search results.

    Implementations raise CacheError on failure; a missing or expired
    entry is returned as None.
    """

    @abstractmethod
    async def get_driver(self, driver_id: str) -> Optional[Driver]:
        ...

    @abstractmethod
    async def set_driver(self, driver_id: str, driver: Driver, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete_driver(self, driver_id: str) -> None:
        ...

    @abstractmethod
    async def get_nearby(self, latitude: float, longitude: float, radius: float, limit: int) -> Optional[List[RankedDriver]]:
        ...

    @abstractmethod
    async def set_nearby(
        self,
        latitude: float,
        longitude: float,
        radius: float,
        limit: int,
        drivers: List[RankedDriver],
        ttl_seconds: int,
    ) -> None:
        ...

    @abstractmethod
    async def invalidate_all_nearby(self) -> None:
        """Remove every materialized nearby-search entry."""

    @abstractmethod
    async def is_healthy(self) -> bool:
        ...


class NearbyFinder(ABC):
    """Source of ranked candidates for the matching service."""

    @abstractmethod
    async def find_nearby_drivers(
        self,
        location: Point,
        radius: float,
        timeout: Optional[float] = None,
    ) -> List[RankedDriver]:
        """Candidates ascending by distance; raises UpstreamUnavailableError on failure."""
