"""
Proximity cache.

Holds copies of individual driver records and materialized nearby-search
results, each with a time-to-live. Two implementations share one key
scheme: Redis for deployments, and a process-local dictionary used when
Redis is disabled.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import TypeAdapter
from redis.asyncio import Redis
from redis.exceptions import RedisError

from driver_matching.app.core.exceptions import CacheError
from driver_matching.app.schemas.driver import Driver, RankedDriver
from driver_matching.app.services.interfaces import ProximityCache

DRIVER_KEY_PREFIX = "driver:"
NEARBY_KEY_PREFIX = "nearby:"

_SCAN_BATCH = 500
_SWEEP_INTERVAL_SECONDS = 60

_ranked_list_adapter = TypeAdapter(List[RankedDriver])


def _quantize(value: float, digits: int) -> float:
    # Adding 0.0 folds -0.0 into 0.0 so both format the same way.
    return round(value, digits) + 0.0


def driver_cache_key(driver_id: str) -> str:
    return f"{DRIVER_KEY_PREFIX}{driver_id}"


def nearby_cache_key(latitude: float, longitude: float, radius: float, limit: int) -> str:
    """
    Key for a nearby-search result set.

    Coordinates are quantized to 6 decimal places (about 0.1 m) and the
    radius to centimetres, so the same query always lands on the same key.
    """
    return "{prefix}{lat:.6f}:{lon:.6f}:{radius:.2f}:{limit}".format(
        prefix=NEARBY_KEY_PREFIX,
        lat=_quantize(latitude, 6),
        lon=_quantize(longitude, 6),
        radius=_quantize(radius, 2),
        limit=limit,
    )


def _encode_ranked(drivers: List[RankedDriver]) -> bytes:
    return _ranked_list_adapter.dump_json(drivers)


def _decode_ranked(data) -> List[RankedDriver]:
    return _ranked_list_adapter.validate_json(data)


class RedisProximityCache(ProximityCache):
    """Proximity cache on Redis. Every failure surfaces as CacheError."""

    def __init__(self, client: Redis):
        self._client = client

    async def get_driver(self, driver_id: str) -> Optional[Driver]:
        try:
            data = await self._client.get(driver_cache_key(driver_id))
            if data is None:
                return None
            return Driver.model_validate_json(data)
        except (RedisError, OSError, ValueError) as exc:
            raise CacheError(f"failed to get driver from cache: {exc}") from exc

    async def set_driver(self, driver_id: str, driver: Driver, ttl_seconds: int) -> None:
        try:
            await self._client.set(driver_cache_key(driver_id), driver.model_dump_json(), ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise CacheError(f"failed to set driver in cache: {exc}") from exc

    async def delete_driver(self, driver_id: str) -> None:
        try:
            await self._client.delete(driver_cache_key(driver_id))
        except (RedisError, OSError) as exc:
            raise CacheError(f"failed to delete driver from cache: {exc}") from exc

    async def get_nearby(self, latitude: float, longitude: float, radius: float, limit: int) -> Optional[List[RankedDriver]]:
        try:
            data = await self._client.get(nearby_cache_key(latitude, longitude, radius, limit))
            if data is None:
                return None
            return _decode_ranked(data)
        except (RedisError, OSError, ValueError) as exc:
            raise CacheError(f"failed to get nearby drivers from cache: {exc}") from exc

    async def set_nearby(
        self,
        latitude: float,
        longitude: float,
        radius: float,
        limit: int,
        drivers: List[RankedDriver],
        ttl_seconds: int,
    ) -> None:
        try:
            await self._client.set(
                nearby_cache_key(latitude, longitude, radius, limit),
                _encode_ranked(drivers),
                ex=ttl_seconds,
            )
        except (RedisError, OSError) as exc:
            raise CacheError(f"failed to set nearby drivers in cache: {exc}") from exc

    async def invalidate_all_nearby(self) -> None:
        try:
            batch = []
            async for key in self._client.scan_iter(match=f"{NEARBY_KEY_PREFIX}*", count=_SCAN_BATCH):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH:
                    await self._client.delete(*batch)
                    batch = []
            if batch:
                await self._client.delete(*batch)
        except (RedisError, OSError) as exc:
            raise CacheError(f"failed to invalidate nearby cache: {exc}") from exc

    async def is_healthy(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            return False


class InMemoryProximityCache(ProximityCache):
    """
    Process-local proximity cache.

    Values are stored serialized, so callers always get a fresh copy.
    Expired entries are dropped on read, and all expired entries are
    swept on write at most once per sweep interval.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: Dict[str, Tuple[str, float]] = {}
        self._next_sweep = self._clock() + _SWEEP_INTERVAL_SECONDS

    def _get(self, key: str):
        entry = self._store.get(key)
        if not entry:
            return None

        data, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None

        return data

    def _set(self, key: str, data, ttl_seconds: int):
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        self._store[key] = (data, now + ttl_seconds)

    def _sweep(self, now: float):
        expired = [key for key, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]
        self._next_sweep = now + _SWEEP_INTERVAL_SECONDS

    async def get_driver(self, driver_id: str) -> Optional[Driver]:
        data = self._get(driver_cache_key(driver_id))
        return Driver.model_validate_json(data) if data is not None else None

    async def set_driver(self, driver_id: str, driver: Driver, ttl_seconds: int) -> None:
        self._set(driver_cache_key(driver_id), driver.model_dump_json(), ttl_seconds)

    async def delete_driver(self, driver_id: str) -> None:
        self._store.pop(driver_cache_key(driver_id), None)

    async def get_nearby(self, latitude: float, longitude: float, radius: float, limit: int) -> Optional[List[RankedDriver]]:
        data = self._get(nearby_cache_key(latitude, longitude, radius, limit))
        return _decode_ranked(data) if data is not None else None

    async def set_nearby(
        self,
        latitude: float,
        longitude: float,
        radius: float,
        limit: int,
        drivers: List[RankedDriver],
        ttl_seconds: int,
    ) -> None:
        self._set(nearby_cache_key(latitude, longitude, radius, limit), _encode_ranked(drivers), ttl_seconds)

    async def invalidate_all_nearby(self) -> None:
        stale = [key for key in self._store if key.startswith(NEARBY_KEY_PREFIX)]
        for key in stale:
            del self._store[key]

    async def is_healthy(self) -> bool:
        return True

    async def clear(self):
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
