"""
Centralized Test Configuration.
"""

import fnmatch
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from driver_matching.app.core.config import settings
from driver_matching.app.core.dependencies import get_location_service, get_matching_service
from driver_matching.app.db.session import create_session_factory, create_tables
from driver_matching.app.main import app as location_app
from driver_matching.app.matching_main import app as matching_app
from driver_matching.app.services.location_service import LocationService
from driver_matching.app.services.location_store import SqlAlchemyLocationStore
from driver_matching.app.services.proximity_cache import RedisProximityCache

# Import models to ensure they are registered with Base
from driver_matching.app.models.driver import DriverRecord  # noqa: F401

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Manually advanced clock for breaker and cache expiry tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.calls = []
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        self.calls.append(("get", key))
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key))
        if self._closed:
            return False
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self.calls.append(("delete",) + keys)
        if self._closed:
            return 0
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FailingRedis:
    """Redis whose every command fails as if the server were down."""

    def _fail(self):
        raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._fail()

    async def get(self, key):
        self._fail()

    async def set(self, key, value, ex=None):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    async def scan_iter(self, match=None, count=None):
        self._fail()
        yield  # pragma: no cover


def make_token(claims: dict = None, expires_delta: timedelta = timedelta(minutes=30), secret_key: str = None) -> str:
    """Rider token as the identity provider would issue it, signed with the configured secret by default."""
    payload = {"sub": "rider-1", "user_id": "rider-1", "authenticated": True}
    if claims is not None:
        payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(payload, secret_key or settings.secret_key, algorithm=settings.algorithm)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return SqlAlchemyLocationStore(session_factory)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def cache(mock_redis):
    return RedisProximityCache(mock_redis)


@pytest.fixture
def location_service(store, cache):
    return LocationService(store, cache)


@pytest.fixture
async def location_api(location_service):
    """HTTP client against the location service, authenticated with the shared API key."""
    location_app.dependency_overrides[get_location_service] = lambda: location_service
    async with AsyncClient(
        transport=ASGITransport(app=location_app),
        base_url="http://location",
        headers={"X-API-Key": settings.matching_api_key},
    ) as client:
        yield client
    location_app.dependency_overrides.clear()


@pytest.fixture
def override_matching_service():
    """Install a matching service on the matching app for the duration of a test."""
    def install(service):
        matching_app.dependency_overrides[get_matching_service] = lambda: service
    yield install
    matching_app.dependency_overrides.clear()


@pytest.fixture
async def matching_api():
    async with AsyncClient(
        transport=ASGITransport(app=matching_app),
        base_url="http://matching",
    ) as client:
        yield client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def failing_redis():
    return FailingRedis()


@pytest.fixture
def token_factory():
    return make_token
