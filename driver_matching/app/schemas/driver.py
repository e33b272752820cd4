"""
Driver Pydantic schemas.

Defines the geospatial data model shared by the location store, the
proximity cache and the HTTP API. Coordinates are always carried as
GeoJSON order: [longitude, latitude].
"""

from datetime import datetime
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from driver_matching.app.services.distance import haversine_distance

Coordinate = Tuple[float, float]


class Point(BaseModel):
    """GeoJSON point. Immutable once constructed."""
    type: Literal["Point"] = Field("Point", description="GeoJSON type, must be 'Point'")
    coordinates: Coordinate = Field(..., description="[longitude, latitude] in degrees")

    class Config:
        frozen = True

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, value: Coordinate) -> Coordinate:
        longitude, latitude = value
        if not -180 <= longitude <= 180:
            raise ValueError("longitude must be between -180 and 180")
        if not -90 <= latitude <= 90:
            raise ValueError("latitude must be between -90 and 90")
        return value

    @classmethod
    def from_lon_lat(cls, longitude: float, latitude: float) -> "Point":
        return cls(coordinates=(longitude, latitude))

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    def distance_to(self, other: "Point") -> float:
        """Great-circle distance to another point, in meters."""
        return haversine_distance(self.coordinates, other.coordinates)


class Driver(BaseModel):
    """Driver record as held by the location store (authoritative) or the cache (copy)."""
    id: Optional[str] = None
    location: Point
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RankedDriver(BaseModel):
    """A driver paired with its full-precision distance from a query center."""
    driver: Driver
    distance: float = Field(..., ge=0, description="Distance in meters")


class SearchQuery(BaseModel):
    """Nearby search parameters. Radius bounds and the default limit are applied by the service."""
    location: Point
    radius: float = Field(..., description="Search radius in meters")
    limit: Optional[int] = Field(None, description="Maximum number of drivers; <= 0 or unset uses the default")


class CreateDriverRequest(BaseModel):
    """Schema for creating a driver."""
    id: Optional[str] = Field(None, max_length=64, description="Optional client supplied ID")
    location: Point

    @field_validator("id")
    @classmethod
    def strip_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class BatchCreateRequest(BaseModel):
    """Schema for creating many drivers in one request."""
    drivers: List[CreateDriverRequest] = Field(..., min_length=1)


class UpdateDriverRequest(BaseModel):
    """Schema for a full driver update (PUT)."""
    location: Point


class DriverSearchData(BaseModel):
    """Payload of a successful nearby search."""
    count: int
    drivers: List[RankedDriver]


class DriverListData(BaseModel):
    """Payload of a (batch) create."""
    count: int
    drivers: List[Driver]
