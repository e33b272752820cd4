"""
Resilient client for the driver location service.

Wraps the search endpoint in a circuit breaker so that a slow or failing
location service makes the matching service fail fast instead of piling
up requests. The HTTP client and the breaker are built by the owner and
handed in; one of each is shared by all requests.
"""

import asyncio
import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError

from driver_matching.app.core.config import Settings
from driver_matching.app.core.exceptions import LocationServiceOperationError, UpstreamUnavailableError
from driver_matching.app.core.observability import CORRELATION_ID_HEADER, correlation_id_var
from driver_matching.app.core.reliability import CircuitBreaker, CircuitOpenError
from driver_matching.app.schemas.driver import Point, RankedDriver
from driver_matching.app.schemas.envelope import FailureEnvelope, SearchEnvelope, search_envelope_adapter
from driver_matching.app.services.interfaces import NearbyFinder

logger = logging.getLogger("driver_matching.location_client")

SEARCH_PATH = "/api/v1/drivers/search"
API_KEY_HEADER = "X-API-Key"


class UpstreamResponseError(Exception):
    """Non-2xx status or an unreadable body. Counted as a breaker failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """HTTP client for the location service, with separate connect and request timeouts."""
    return httpx.AsyncClient(
        base_url=settings.driver_location_base_url,
        timeout=httpx.Timeout(
            settings.client_request_timeout_seconds,
            connect=settings.client_connect_timeout_seconds,
        ),
    )


def build_circuit_breaker(settings: Settings) -> CircuitBreaker:
    return CircuitBreaker(
        name="DriverLocationService",
        failure_threshold=settings.breaker_failure_threshold,
        reset_timeout=settings.breaker_reset_timeout_seconds,
        interval=settings.breaker_interval_seconds,
        half_open_max_requests=settings.breaker_half_open_max_requests,
    )


class DriverLocationClient(NearbyFinder):
    """
    Calls POST /api/v1/drivers/search through a circuit breaker.

    Breaker failures: transport errors (including timeouts), an expired
    caller deadline, non-2xx responses, and bodies that do not decode into the search envelope.
    A well-formed body with `"success": false` raises
    LocationServiceOperationError but is not held against the breaker.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        breaker: CircuitBreaker,
        api_key: str = "",
    ):
        self._http = http_client
        self._breaker = breaker
        self._api_key = api_key

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def find_nearby_drivers(
        self,
        location: Point,
        radius: float,
        timeout: Optional[float] = None,
    ) -> List[RankedDriver]:
        """
        Ranked drivers around location, nearest first.

        Args:
            location: Search center
            radius: Search radius in meters
            timeout: Optional caller deadline in seconds for this call,
                on top of the client's own connect/request timeouts

        Raises:
            UpstreamUnavailableError: circuit open, transport failure,
                bad status or unreadable body
            LocationServiceOperationError: the service reported failure
        """
        payload = {
            "location": location.model_dump(mode="json"),
            "radius": radius,
        }

        try:
            envelope = await self._breaker.call(self._search, payload, timeout)
        except CircuitOpenError as exc:
            logger.warning("Driver location request rejected: %s", exc)
            raise UpstreamUnavailableError(
                "Driver location service unavailable (circuit open)",
                details={"breaker": exc.name, "state": exc.state},
            ) from exc
        except asyncio.TimeoutError as exc:
            logger.warning("Driver location request exceeded caller deadline of %ss", timeout)
            raise UpstreamUnavailableError(
                "Driver location service timed out",
                details={"timeout": timeout},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Driver location request failed: %s", exc)
            raise UpstreamUnavailableError(f"Driver location service unreachable: {exc}") from exc
        except UpstreamResponseError as exc:
            logger.warning("Driver location service returned an unusable response: %s", exc)
            raise UpstreamUnavailableError(
                str(exc),
                details={"status_code": exc.status_code} if exc.status_code else None,
            ) from exc

        if isinstance(envelope, FailureEnvelope):
            raise LocationServiceOperationError(envelope.error, envelope.message)

        return envelope.data.drivers

    async def _search(self, payload: dict, timeout: Optional[float] = None) -> SearchEnvelope:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers[API_KEY_HEADER] = self._api_key
        correlation_id = correlation_id_var.get()
        if correlation_id:
            headers[CORRELATION_ID_HEADER] = correlation_id

        # An expired deadline counts against the breaker; external cancellation does not.
        request = self._http.post(SEARCH_PATH, json=payload, headers=headers)
        if timeout is not None:
            response = await asyncio.wait_for(request, timeout)
        else:
            response = await request

        if not response.is_success:
            raise UpstreamResponseError(
                f"unexpected status: {response.status_code}, body: {response.text}",
                status_code=response.status_code,
            )

        try:
            return search_envelope_adapter.validate_json(response.content)
        except SchemaValidationError as exc:
            raise UpstreamResponseError(f"invalid response from driver location service: {exc}") from exc

    async def aclose(self):
        await self._http.aclose()
