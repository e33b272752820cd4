"""
FastAPI dependencies.

Authentication for both services, plus accessors for the service
objects the application lifespan stores on `app.state`.
"""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from driver_matching.app.core.config import Settings, get_settings
from driver_matching.app.core.jwt import decode_access_token
from driver_matching.app.schemas.match import RiderPrincipal
from driver_matching.app.services.location_service import LocationService
from driver_matching.app.services.matching_service import MatchingService

# Security schemes. Missing credentials are reported by the dependencies
# below so both services answer 401 consistently.
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


def get_location_service(request: Request) -> LocationService:
    return request.app.state.location_service


def get_matching_service(request: Request) -> MatchingService:
    return request.app.state.matching_service


async def require_api_key(
    api_key: Optional[str] = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Static shared-secret check for the location service's driver endpoints.

    Raises:
        HTTPException: 401 if the key is missing or does not match
    """
    if not api_key or not api_key.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is required",
        )

    if not secrets.compare_digest(api_key.strip(), settings.matching_api_key.strip()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key


async def get_current_rider(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> RiderPrincipal:
    """
    FastAPI dependency for rider JWT authentication.

    Checks:
    1. A bearer token is present and its signature/expiry are valid
    2. The token carries `authenticated: true`
    3. The token names the rider in `user_id` (or `sub`)

    Returns:
        The authenticated rider

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 1. Decode and validate JWT
    payload = decode_access_token(
        credentials.credentials,
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
    )
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Rider must be flagged as authenticated
    if payload.get("authenticated") is not True:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Rider identifier
    rider_id = payload.get("user_id") or payload.get("sub")
    if not isinstance(rider_id, str) or not rider_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="user_id or sub claim is required in JWT",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RiderPrincipal(rider_id=rider_id, claims=payload)
