"""
Great-circle distance tests.
"""

import math

import pytest

from driver_matching.app.schemas.driver import Point
from driver_matching.app.services.distance import EARTH_RADIUS_METERS, haversine_distance

ISTANBUL = (28.9784, 41.0082)
ANKARA = (32.8597, 39.9334)


def test_identical_points_are_zero_apart():
    assert haversine_distance(ISTANBUL, ISTANBUL) < 1


def test_distance_is_symmetric():
    assert haversine_distance(ISTANBUL, ANKARA) == pytest.approx(haversine_distance(ANKARA, ISTANBUL))


def test_istanbul_to_ankara():
    assert haversine_distance(ISTANBUL, ANKARA) == pytest.approx(351_000, abs=15_000)


def test_antipodal_points_are_half_the_circumference():
    distance = haversine_distance((0.0, 0.0), (180.0, 0.0))
    assert distance == pytest.approx(math.pi * EARTH_RADIUS_METERS, abs=1)
    assert distance == pytest.approx(20_015_000, abs=100_000)


def test_pole_to_pole():
    assert haversine_distance((0.0, 90.0), (0.0, -90.0)) == pytest.approx(math.pi * EARTH_RADIUS_METERS, abs=1)


def test_crossing_the_antimeridian_takes_the_short_way():
    # 0.2 degrees of longitude on the equator, about 22 km
    distance = haversine_distance((179.9, 0.0), (-179.9, 0.0))
    assert distance == pytest.approx(22_239, abs=10)


def test_point_distance_to_uses_longitude_latitude_order():
    a = Point.from_lon_lat(*ISTANBUL)
    b = Point.from_lon_lat(*ANKARA)
    assert a.longitude == ISTANBUL[0]
    assert a.latitude == ISTANBUL[1]
    assert a.distance_to(b) == pytest.approx(haversine_distance(ISTANBUL, ANKARA))
