"""
SQLAlchemy-backed location store.

Owns the authoritative driver records and answers radius-bounded
nearest-neighbour queries. The database narrows candidates with an
indexed bounding-box predicate; exact great-circle distances decide
membership and order.
"""

import logging
import math
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from driver_matching.app.core.exceptions import DriverConflictError, ResourceNotFoundError, StorageError
from driver_matching.app.models.driver import DriverRecord
from driver_matching.app.schemas.driver import Driver, Point, RankedDriver
from driver_matching.app.services.distance import EARTH_RADIUS_METERS
from driver_matching.app.services.interfaces import LocationStore

logger = logging.getLogger("driver_matching.location_store")

# Bounding boxes are padded by roughly a centimetre so float rounding
# never drops a driver sitting exactly on the radius.
_BBOX_PADDING_DEGREES = 1e-7


def new_driver_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(record: DriverRecord) -> Driver:
    return Driver(
        id=record.id,
        location=Point.from_lon_lat(record.longitude, record.latitude),
        created_at=_as_utc(record.created_at),
        updated_at=_as_utc(record.updated_at),
    )


def _to_record(driver: Driver) -> DriverRecord:
    return DriverRecord(
        id=driver.id,
        longitude=driver.location.longitude,
        latitude=driver.location.latitude,
        created_at=driver.created_at,
        updated_at=driver.updated_at,
    )


@contextmanager
def translate_storage_errors(action: str):
    """Turn driver and connection failures into StorageError."""
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Location store failed to %s: %s", action, exc)
        raise StorageError(f"Failed to {action}: {exc}") from exc


def bounding_box_condition(center: Point, radius_meters: float):
    """
    SQL predicate selecting every row that could lie within radius of center.

    Returns None when the box covers the whole globe.
    """
    angular = radius_meters / EARTH_RADIUS_METERS
    lat = center.latitude
    lat_delta = math.degrees(angular) + _BBOX_PADDING_DEGREES
    min_lat, max_lat = lat - lat_delta, lat + lat_delta

    if min_lat <= -90 or max_lat >= 90:
        # A pole is inside the circle: every longitude qualifies.
        return and_(DriverRecord.latitude >= max(min_lat, -90.0), DriverRecord.latitude <= min(max_lat, 90.0))

    ratio = math.sin(angular) / math.cos(math.radians(lat))
    latitude_condition = DriverRecord.latitude.between(min_lat, max_lat)
    if angular >= math.pi / 2 or ratio >= 1:
        return latitude_condition

    lon = center.longitude
    lon_delta = math.degrees(math.asin(ratio)) + _BBOX_PADDING_DEGREES
    min_lon, max_lon = lon - lon_delta, lon + lon_delta

    if min_lon < -180:
        longitude_condition = or_(DriverRecord.longitude >= min_lon + 360, DriverRecord.longitude <= max_lon)
    elif max_lon > 180:
        longitude_condition = or_(DriverRecord.longitude >= min_lon, DriverRecord.longitude <= max_lon - 360)
    else:
        longitude_condition = DriverRecord.longitude.between(min_lon, max_lon)

    return and_(latitude_condition, longitude_condition)


class SqlAlchemyLocationStore(LocationStore):
    """
    Location store on an async SQLAlchemy engine.

    Every operation runs in its own session and transaction, so one
    instance can be shared by all concurrent requests.
    """

    def __init__(self, session_factory: async_sessionmaker, engine: Optional[AsyncEngine] = None):
        self._session_factory = session_factory
        self._engine = engine

    async def create(self, driver: Driver) -> Driver:
        now = _utcnow()
        stored = driver.model_copy(update={
            "id": driver.id or new_driver_id(),
            "created_at": now,
            "updated_at": now,
        })

        with translate_storage_errors("insert driver"):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        session.add(_to_record(stored))
            except IntegrityError as exc:
                raise DriverConflictError(stored.id) from exc

        return stored

    async def batch_create(self, drivers: List[Driver]) -> List[Driver]:
        """
        Insert drivers one transaction each.

        A driver that fails (duplicate ID, constraint violation) is
        logged and skipped; the rest are still stored. A store that is
        unreachable altogether raises StorageError.
        """
        created = []
        for driver in drivers:
            try:
                created.append(await self.create(driver))
            except DriverConflictError as exc:
                logger.warning("Skipping driver in batch: %s", exc.message)
        return created

    async def search_nearby(self, center: Point, radius_meters: float, limit: int) -> List[RankedDriver]:
        """
        Drivers within radius_meters of center, ascending by distance.

        A limit of 0 (or below) means no cap at this layer; callers apply
        their own default before reaching the store.
        """
        query = select(DriverRecord)
        condition = bounding_box_condition(center, radius_meters)
        if condition is not None:
            query = query.where(condition)

        with translate_storage_errors("search nearby drivers"):
            async with self._session_factory() as session:
                result = await session.execute(query)
                records = result.scalars().all()

        ranked = []
        for record in records:
            driver = _to_domain(record)
            distance = center.distance_to(driver.location)
            if distance <= radius_meters:
                ranked.append(RankedDriver(driver=driver, distance=distance))

        ranked.sort(key=lambda item: (item.distance, item.driver.id))
        if limit > 0:
            ranked = ranked[:limit]
        return ranked

    async def get_by_id(self, driver_id: str) -> Driver:
        with translate_storage_errors("get driver"):
            async with self._session_factory() as session:
                record = await session.get(DriverRecord, driver_id)

        if record is None:
            raise ResourceNotFoundError("Driver", driver_id)
        return _to_domain(record)

    async def update(self, driver: Driver) -> Driver:
        with translate_storage_errors("update driver"):
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(DriverRecord, driver.id)
                    if record is None:
                        raise ResourceNotFoundError("Driver", driver.id)

                    record.longitude = driver.location.longitude
                    record.latitude = driver.location.latitude
                    record.updated_at = _utcnow()
                    updated = _to_domain(record)

        return updated

    async def delete(self, driver_id: str) -> None:
        with translate_storage_errors("delete driver"):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(DriverRecord).where(DriverRecord.id == driver_id))

        if result.rowcount == 0:
            raise ResourceNotFoundError("Driver", driver_id)

    async def count(self) -> int:
        with translate_storage_errors("count drivers"):
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(DriverRecord.id)))
                return result.scalar_one()

    async def is_empty(self) -> bool:
        return await self.count() == 0

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
