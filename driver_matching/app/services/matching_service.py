"""
Matching service.

Pairs a rider with the nearest driver returned by the location service.
Candidates arrive sorted by ascending distance, so the head of the list
is the match. No fallback or retry happens here: callers decide whether
to retry (service unavailable) or widen the search (no drivers).
"""

from typing import Optional

from driver_matching.app.core.exceptions import NoDriversAvailableError
from driver_matching.app.schemas.match import MatchResult, Rider
from driver_matching.app.services.interfaces import NearbyFinder

DISTANCE_PRECISION = 2


class MatchingService:

    def __init__(self, finder: NearbyFinder):
        self.finder = finder

    async def match_rider_to_driver(self, rider: Rider, radius: float, timeout: Optional[float] = None) -> MatchResult:
        """
        Match a rider to the nearest available driver within radius.

        Raises:
            NoDriversAvailableError: nobody within radius
            UpstreamUnavailableError: the location service could not answer
        """
        drivers = await self.finder.find_nearby_drivers(rider.location, radius, timeout=timeout)
        if not drivers:
            raise NoDriversAvailableError()

        nearest = drivers[0]
        return MatchResult(
            rider_id=rider.id,
            driver_id=nearest.driver.id,
            distance=round(nearest.distance, DISTANCE_PRECISION),
        )
