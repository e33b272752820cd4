"""
Matching Pydantic schemas.

Defines request and response models for rider-to-driver matching.
"""

from typing import Optional

from pydantic import BaseModel, Field

from driver_matching.app.schemas.driver import Point

MIN_MATCH_RADIUS = 0.1
MAX_MATCH_RADIUS = 50000.0


class Rider(BaseModel):
    """A rider asking for a match."""
    id: str
    location: Point


class MatchRequest(BaseModel):
    """Schema for a match request."""
    location: Point = Field(..., description="Rider's current location in GeoJSON format")
    radius: float = Field(
        ...,
        ge=MIN_MATCH_RADIUS,
        le=MAX_MATCH_RADIUS,
        description="Search radius in meters",
    )

    def create_rider(self, rider_id: str) -> Rider:
        return Rider(id=rider_id, location=self.location)


class MatchResult(BaseModel):
    """Outcome of a successful match. Distance is rounded for presentation."""
    rider_id: str
    driver_id: str
    distance: float


class MatchResponse(BaseModel):
    """Schema for match response."""
    driver: str = Field(..., description="Matched driver ID")
    rider: str = Field(..., description="Rider ID")
    distance: float = Field(..., description="Distance between rider and driver in meters")

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchResponse":
        return cls(driver=result.driver_id, rider=result.rider_id, distance=result.distance)


class RiderPrincipal(BaseModel):
    """Authenticated caller of the matching API, as read from the bearer token."""
    rider_id: str
    authenticated: bool = True
    claims: Optional[dict] = None
