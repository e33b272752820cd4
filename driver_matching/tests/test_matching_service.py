"""
Matching service tests with a stubbed nearby finder.
"""

import pytest

from driver_matching.app.core.exceptions import NoDriversAvailableError, UpstreamUnavailableError
from driver_matching.app.schemas.driver import Driver, Point, RankedDriver
from driver_matching.app.schemas.match import Rider
from driver_matching.app.services.interfaces import NearbyFinder
from driver_matching.app.services.matching_service import MatchingService

RIDER = Rider(id="rider-1", location=Point.from_lon_lat(29.0, 41.0))


class StubFinder(NearbyFinder):
    def __init__(self, drivers=None, error=None):
        self.drivers = drivers or []
        self.error = error
        self.calls = []

    async def find_nearby_drivers(self, location, radius, timeout=None):
        self.calls.append((location, radius, timeout))
        if self.error is not None:
            raise self.error
        return self.drivers


def ranked(driver_id, distance):
    return RankedDriver(driver=Driver(id=driver_id, location=Point.from_lon_lat(29.0, 41.0)), distance=distance)


@pytest.mark.asyncio
async def test_picks_the_head_of_the_list():
    finder = StubFinder([ranked("closest", 12.3456), ranked("further", 80.0)])

    result = await MatchingService(finder).match_rider_to_driver(RIDER, 1000)

    assert result.rider_id == "rider-1"
    assert result.driver_id == "closest"
    assert result.distance == 12.35
    assert finder.calls == [(RIDER.location, 1000, None)]


@pytest.mark.asyncio
async def test_passes_the_caller_deadline_through():
    finder = StubFinder([ranked("d1", 1.0)])

    await MatchingService(finder).match_rider_to_driver(RIDER, 1000, timeout=2.5)

    assert finder.calls[0][2] == 2.5


@pytest.mark.asyncio
async def test_empty_result_is_no_drivers_available():
    with pytest.raises(NoDriversAvailableError) as exc_info:
        await MatchingService(StubFinder([])).match_rider_to_driver(RIDER, 1000)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_upstream_failure_propagates_unchanged():
    error = UpstreamUnavailableError("Driver location service unavailable (circuit open)")

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await MatchingService(StubFinder(error=error)).match_rider_to_driver(RIDER, 1000)

    assert exc_info.value is error
    assert exc_info.value.status_code == 503
