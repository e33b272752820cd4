"""
Great-circle distance between two coordinates.

Coordinates are (longitude, latitude) pairs in degrees. Invalid ranges
are the caller's concern; this function never raises for them.
"""

import math
from typing import Sequence

EARTH_RADIUS_METERS = 6371000.0


def haversine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Distance in meters between two (longitude, latitude) coordinates.

    Uses the haversine formula on a spherical Earth. Symmetric, zero for
    identical points, at most half the Earth's circumference.
    """
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])

    d_lat = lat2 - lat1
    d_lon = lon2 - lon1

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))

    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))
