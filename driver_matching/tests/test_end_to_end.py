"""
End-to-end tests: matching API -> resilient client -> location API -> store.

Both applications run in-process; the matching service's HTTP client is
wired straight into the location app through an ASGI transport.
"""

import httpx
import pytest

from driver_matching.app.core.config import settings
from driver_matching.app.core.reliability import OPEN, CircuitBreaker
from driver_matching.app.main import app as location_app
from driver_matching.app.services.location_client import DriverLocationClient
from driver_matching.app.services.matching_service import MatchingService

MATCH_BODY = {"location": {"type": "Point", "coordinates": [29.0, 41.0]}, "radius": 1000}


def wire_client(api_key, clock):
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=location_app), base_url="http://location")
    breaker = CircuitBreaker(name="DriverLocationService", failure_threshold=2, clock=clock)
    return DriverLocationClient(http_client, breaker, api_key=api_key)


@pytest.fixture
async def location_client(location_api, clock):
    client = wire_client(settings.matching_api_key, clock)
    yield client
    await client.aclose()


@pytest.mark.asyncio
async def test_rider_is_matched_to_stored_driver(
    location_api, location_client, matching_api, override_matching_service, auth_headers
):
    response = await location_api.post("/api/v1/drivers", json={
        "id": "driver-1",
        "location": {"type": "Point", "coordinates": [29.0, 41.0]},
    })
    assert response.status_code == 201
    override_matching_service(MatchingService(location_client))

    response = await matching_api.post("/api/v1/match", json=MATCH_BODY, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["driver"] == "driver-1"
    assert body["rider"] == "rider-1"
    assert body["distance"] == pytest.approx(0.0, abs=0.01)


@pytest.mark.asyncio
async def test_nearest_of_several_drivers_wins(
    location_api, location_client, matching_api, override_matching_service, auth_headers
):
    await location_api.post("/api/v1/drivers/batch", json={"drivers": [
        {"id": "far", "location": {"type": "Point", "coordinates": [29.0, 41.005]}},
        {"id": "near", "location": {"type": "Point", "coordinates": [29.0, 41.001]}},
    ]})
    override_matching_service(MatchingService(location_client))

    response = await matching_api.post("/api/v1/match", json=MATCH_BODY, headers=auth_headers)

    assert response.json()["driver"] == "near"
    assert response.json()["distance"] == pytest.approx(111.19, abs=0.01)


@pytest.mark.asyncio
async def test_empty_area_is_404_not_503(location_api, location_client, matching_api, override_matching_service, auth_headers):
    override_matching_service(MatchingService(location_client))

    response = await matching_api.post("/api/v1/match", json=MATCH_BODY, headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "ERR_NO_DRIVERS"
    assert location_client.breaker.state != OPEN


@pytest.mark.asyncio
async def test_rejected_api_key_trips_the_breaker(location_api, matching_api, override_matching_service, auth_headers, clock):
    client = wire_client("wrong-key", clock)
    override_matching_service(MatchingService(client))

    for _ in range(2):
        response = await matching_api.post("/api/v1/match", json=MATCH_BODY, headers=auth_headers)
        assert response.status_code == 503

    assert client.breaker.state == OPEN

    response = await matching_api.post("/api/v1/match", json=MATCH_BODY, headers=auth_headers)
    assert response.status_code == 503
    assert response.json()["details"]["state"] == OPEN
    await client.aclose()
