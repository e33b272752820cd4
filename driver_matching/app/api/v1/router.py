"""
API v1 Routers.

The location service and the matching service mount different routers.
"""

from fastapi import APIRouter
from driver_matching.app.api.v1.endpoints import drivers, match

# Location service endpoints
location_router = APIRouter()
location_router.include_router(drivers.router)

# Matching service endpoints
matching_router = APIRouter()
matching_router.include_router(match.router)
