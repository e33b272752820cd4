"""
Matching API Endpoints.

Riders ask for the nearest available driver around their location.
"""

from fastapi import APIRouter, Depends

from driver_matching.app.core.dependencies import get_current_rider, get_matching_service
from driver_matching.app.schemas.match import MatchRequest, MatchResponse, RiderPrincipal
from driver_matching.app.services.matching_service import MatchingService

router = APIRouter(tags=["Matching"])


@router.post("/match", response_model=MatchResponse)
async def match_rider(
    request: MatchRequest,
    rider: RiderPrincipal = Depends(get_current_rider),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Match the authenticated rider to the nearest driver.

    Returns 404 when nobody is within the radius and 503 when the driver
    location service cannot be reached; the two are never merged.
    """
    result = await service.match_rider_to_driver(request.create_rider(rider.rider_id), request.radius)
    return MatchResponse.from_result(result)
