"""
Driver Location Service entry point.

Stores driver positions and answers nearby-driver searches, with a
cache-aside proximity cache in front of the location store.

Run with: uvicorn driver_matching.app.main:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from driver_matching.app.api.v1.router import location_router
from driver_matching.app.core.config import settings
from driver_matching.app.core.dependencies import get_location_service
from driver_matching.app.core.exceptions import register_exception_handlers
from driver_matching.app.core.observability import ObservabilityMiddleware, configure_logging
from driver_matching.app.core.redis_client import create_redis_client, ping_redis
from driver_matching.app.db.session import create_engine, create_session_factory, create_tables
from driver_matching.app.services.location_service import LocationService
from driver_matching.app.services.location_store import SqlAlchemyLocationStore
from driver_matching.app.services.proximity_cache import InMemoryProximityCache, RedisProximityCache

# Import models to ensure they are registered with Base
from driver_matching.app.models.driver import DriverRecord  # noqa: F401

logger = logging.getLogger("driver_matching.location")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates the engine, the drivers table and the location store.
    2. Connects the proximity cache (Redis, or in-memory when disabled).
    3. Disposes of both on shutdown.
    """
    configure_logging(settings.log_level)

    engine = create_engine(settings)
    await create_tables(engine)
    store = SqlAlchemyLocationStore(create_session_factory(engine), engine=engine)

    redis = None
    if settings.redis_enabled:
        redis = create_redis_client(settings)
        if not await ping_redis(redis):
            logger.warning("Redis at %s is not responding; cache operations will degrade to the store", settings.redis_url)
        cache = RedisProximityCache(redis)
    else:
        logger.info("Redis disabled, using in-memory proximity cache")
        cache = InMemoryProximityCache()

    app.state.location_service = LocationService(
        store,
        cache,
        driver_ttl_seconds=settings.driver_cache_ttl_seconds,
        nearby_ttl_seconds=settings.nearby_cache_ttl_seconds,
        default_limit=settings.default_search_limit,
        max_limit=settings.max_search_limit,
        max_radius=settings.max_search_radius,
    )
    yield

    if redis is not None:
        await redis.aclose()
    await store.close()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Stores driver locations and finds nearby drivers",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
register_exception_handlers(app)


@app.get("/health", tags=["Health"])
async def health_check(service: LocationService = Depends(get_location_service)):
    """
    Health check endpoint.

    Cache health is reported for visibility only; a down cache does not
    make the service unhealthy.
    """
    return {
        "status": "healthy",
        "service": "driver-location-service",
        "version": settings.api_version,
        "cache_healthy": await service.cache_healthy(),
    }


# Include API v1 router
app.include_router(location_router, prefix=settings.api_prefix)


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Driver Location Service API",
        "docs": "/docs",
        "health": "/health",
    }
