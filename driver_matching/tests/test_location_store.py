"""
Location store tests against SQLite.
"""

import pytest
from sqlalchemy.exc import OperationalError

from driver_matching.app.core.exceptions import DriverConflictError, ResourceNotFoundError, StorageError
from driver_matching.app.schemas.driver import Driver, Point
from driver_matching.app.services.location_store import SqlAlchemyLocationStore

CENTER = Point.from_lon_lat(29.0, 41.0)


def at(longitude, latitude, driver_id=None):
    return Driver(id=driver_id, location=Point.from_lon_lat(longitude, latitude))


@pytest.mark.asyncio
async def test_create_assigns_id_and_timestamps(store):
    driver = await store.create(at(29.0, 41.0))

    assert driver.id
    assert driver.created_at is not None
    assert driver.updated_at == driver.created_at

    fetched = await store.get_by_id(driver.id)
    assert fetched.location == driver.location
    assert fetched.created_at is not None and fetched.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_create_keeps_client_supplied_id(store):
    driver = await store.create(at(29.0, 41.0, "driver-7"))
    assert driver.id == "driver-7"


@pytest.mark.asyncio
async def test_duplicate_id_is_a_conflict(store):
    await store.create(at(29.0, 41.0, "dup"))

    with pytest.raises(DriverConflictError) as exc_info:
        await store.create(at(30.0, 40.0, "dup"))
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_get_missing_driver(store):
    with pytest.raises(ResourceNotFoundError):
        await store.get_by_id("nobody")


@pytest.mark.asyncio
async def test_search_orders_by_distance_and_filters_radius(store):
    await store.create(at(29.0, 41.001, "d-111m"))
    await store.create(at(29.0, 41.002, "d-222m"))
    await store.create(at(29.0, 41.0005, "d-55m"))
    await store.create(at(29.0, 41.05, "d-5km"))

    results = await store.search_nearby(CENTER, 1000, 10)

    assert [item.driver.id for item in results] == ["d-55m", "d-111m", "d-222m"]
    distances = [item.distance for item in results]
    assert distances == sorted(distances)
    assert all(distance <= 1000 for distance in distances)


@pytest.mark.asyncio
async def test_search_limit_truncates_nearest_first(store):
    for index in range(5):
        await store.create(at(29.0, 41.0 + 0.001 * (index + 1), f"d{index}"))

    results = await store.search_nearby(CENTER, 10000, 2)
    assert [item.driver.id for item in results] == ["d0", "d1"]


@pytest.mark.asyncio
async def test_search_limit_zero_means_no_cap(store):
    for index in range(12):
        await store.create(at(29.0, 41.0 + 0.0001 * (index + 1)))

    results = await store.search_nearby(CENTER, 10000, 0)
    assert len(results) == 12


@pytest.mark.asyncio
async def test_equal_distances_are_ordered_by_id(store):
    await store.create(at(29.0, 41.001, "b"))
    await store.create(at(29.0, 41.001, "a"))

    results = await store.search_nearby(CENTER, 1000, 10)
    assert [item.driver.id for item in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_driver_exactly_on_the_radius_is_included(store):
    driver = await store.create(at(29.01, 41.01, "edge"))
    radius = CENTER.distance_to(driver.location)

    results = await store.search_nearby(CENTER, radius, 10)
    assert [item.driver.id for item in results] == ["edge"]


@pytest.mark.asyncio
async def test_search_across_the_antimeridian(store):
    await store.create(at(-179.999, 0.0, "east"))

    results = await store.search_nearby(Point.from_lon_lat(179.999, 0.0), 1000, 10)

    assert [item.driver.id for item in results] == ["east"]
    assert results[0].distance == pytest.approx(222, abs=2)


@pytest.mark.asyncio
async def test_search_over_the_pole(store):
    await store.create(at(180.0, 89.9999, "other-side"))

    results = await store.search_nearby(Point.from_lon_lat(0.0, 89.9999), 1000, 10)
    assert [item.driver.id for item in results] == ["other-side"]


@pytest.mark.asyncio
async def test_empty_store_returns_empty_list(store):
    assert await store.search_nearby(CENTER, 1000, 10) == []
    assert await store.is_empty()


@pytest.mark.asyncio
async def test_update_replaces_location(store):
    driver = await store.create(at(29.0, 41.0, "mover"))

    updated = await store.update(at(30.0, 40.0, "mover"))

    assert updated.location == Point.from_lon_lat(30.0, 40.0)
    assert updated.updated_at >= driver.updated_at
    assert (await store.get_by_id("mover")).location == Point.from_lon_lat(30.0, 40.0)


@pytest.mark.asyncio
async def test_update_missing_driver(store):
    with pytest.raises(ResourceNotFoundError):
        await store.update(at(30.0, 40.0, "ghost"))


@pytest.mark.asyncio
async def test_delete(store):
    await store.create(at(29.0, 41.0, "gone"))
    await store.delete("gone")

    with pytest.raises(ResourceNotFoundError):
        await store.get_by_id("gone")
    with pytest.raises(ResourceNotFoundError):
        await store.delete("gone")


@pytest.mark.asyncio
async def test_batch_create_skips_conflicts(store):
    await store.create(at(29.0, 41.0, "taken"))

    created = await store.batch_create([
        at(29.1, 41.1, "new-1"),
        at(29.2, 41.2, "taken"),
        at(29.3, 41.3),
    ])

    assert len(created) == 2
    assert created[0].id == "new-1"
    assert await store.count() == 3


@pytest.mark.asyncio
async def test_unreachable_database_raises_storage_error():
    def broken_session_factory():
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    store = SqlAlchemyLocationStore(broken_session_factory)

    with pytest.raises(StorageError) as exc_info:
        await store.search_nearby(CENTER, 1000, 10)
    assert exc_info.value.status_code == 503

    with pytest.raises(StorageError):
        await store.create(at(29.0, 41.0))
