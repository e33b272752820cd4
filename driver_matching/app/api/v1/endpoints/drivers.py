"""
Driver Location API Endpoints.

Driver CRUD and nearby search. Every route requires the shared API key.
"""

from typing import Union

from fastapi import APIRouter, Body, Depends, Path, status

from driver_matching.app.core.dependencies import get_location_service, require_api_key
from driver_matching.app.schemas.driver import (
    BatchCreateRequest,
    CreateDriverRequest,
    Driver,
    DriverListData,
    DriverSearchData,
    Point,
    SearchQuery,
    UpdateDriverRequest,
)
from driver_matching.app.schemas.envelope import success_body
from driver_matching.app.services.location_service import LocationService

router = APIRouter(
    prefix="/drivers",
    tags=["Drivers"],
    dependencies=[Depends(require_api_key)],
)


async def _batch_create(request: BatchCreateRequest, service: LocationService) -> dict:
    drivers = [Driver(id=item.id, location=item.location) for item in request.drivers]
    created = await service.batch_create_drivers(drivers)
    return success_body(
        DriverListData(count=len(created), drivers=created),
        "Drivers created successfully",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_drivers(
    payload: Union[BatchCreateRequest, CreateDriverRequest] = Body(...),
    service: LocationService = Depends(get_location_service),
):
    """
    Create a driver, or many at once.

    Accepts either a single `{id?, location}` object or `{drivers: [...]}`.
    """
    if isinstance(payload, BatchCreateRequest):
        return await _batch_create(payload, service)

    driver = await service.create_driver(payload.location, driver_id=payload.id)
    return success_body(driver, "Driver created successfully")


@router.post("/batch", status_code=status.HTTP_201_CREATED)
async def batch_create_drivers(
    payload: BatchCreateRequest,
    service: LocationService = Depends(get_location_service),
):
    """
    Create many drivers in one request.

    Partial success is possible; `count` reports how many were stored.
    """
    return await _batch_create(payload, service)


@router.post("/search")
async def search_nearby_drivers(
    query: SearchQuery,
    service: LocationService = Depends(get_location_service),
):
    """Find drivers within `radius` meters of `location`, nearest first."""
    drivers = await service.search_nearby_drivers(query)
    return success_body(
        DriverSearchData(count=len(drivers), drivers=drivers),
        "Nearby drivers retrieved successfully",
    )


@router.get("/{driver_id}")
async def get_driver(
    driver_id: str = Path(..., description="Driver ID"),
    service: LocationService = Depends(get_location_service),
):
    driver = await service.get_driver(driver_id)
    return success_body(driver)


@router.put("/{driver_id}")
async def update_driver(
    payload: UpdateDriverRequest,
    driver_id: str = Path(..., description="Driver ID"),
    service: LocationService = Depends(get_location_service),
):
    """Replace a driver's record."""
    driver = await service.update_driver(Driver(id=driver_id, location=payload.location))
    return success_body(driver, "Driver updated successfully")


@router.patch("/{driver_id}/location")
async def update_driver_location(
    location: Point,
    driver_id: str = Path(..., description="Driver ID"),
    service: LocationService = Depends(get_location_service),
):
    """Move a driver to a new location."""
    driver = await service.update_driver_location(driver_id, location)
    return success_body(driver, "Driver location updated successfully")


@router.delete("/{driver_id}")
async def delete_driver(
    driver_id: str = Path(..., description="Driver ID"),
    service: LocationService = Depends(get_location_service),
):
    await service.delete_driver(driver_id)
    return success_body({"id": driver_id}, "Driver deleted successfully")
