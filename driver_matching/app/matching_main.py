"""
Matching Service entry point.

Matches an authenticated rider to the nearest driver, calling the driver
location service through a circuit-breaker-protected client.

Run with: uvicorn driver_matching.app.matching_main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from driver_matching.app.api.v1.router import matching_router
from driver_matching.app.core.config import settings
from driver_matching.app.core.exceptions import register_exception_handlers
from driver_matching.app.core.observability import ObservabilityMiddleware, configure_logging
from driver_matching.app.services.location_client import (
    DriverLocationClient,
    build_circuit_breaker,
    build_http_client,
)
from driver_matching.app.services.matching_service import MatchingService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the one HTTP client and the one circuit breaker this process
    uses for the driver location service, and close the client on shutdown.
    """
    configure_logging(settings.log_level)

    client = DriverLocationClient(
        build_http_client(settings),
        build_circuit_breaker(settings),
        api_key=settings.driver_location_api_key,
    )
    app.state.location_client = client
    app.state.matching_service = MatchingService(client)
    yield

    await client.aclose()


app = FastAPI(
    title=settings.matching_app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Matches riders to the nearest available driver",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

register_exception_handlers(app)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Reports the driver location circuit state when the client is running."""
    client = getattr(request.app.state, "location_client", None)
    return {
        "status": "healthy",
        "service": "matching-service",
        "version": settings.api_version,
        "location_service_circuit": client.breaker.state if client else None,
    }


app.include_router(matching_router, prefix=settings.api_prefix)
