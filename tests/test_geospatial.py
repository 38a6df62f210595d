import math

import pytest

from src.route_tracker.models.domain import Coordinate
from src.route_tracker.services.geospatial import (
    coordinates_match,
    distance_meters,
    distance_to_path,
    haversine_m,
    is_off_route,
)

PATH = [Coordinate(24.02, -104.65), Coordinate(24.025, -104.655), Coordinate(24.03, -104.66)]


def test_haversine_one_degree_of_latitude():
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


def test_haversine_is_zero_for_same_point():
    assert haversine_m(24.02, -104.65, 24.02, -104.65) == 0.0


def test_distance_to_empty_path_is_infinite():
    assert distance_to_path(Coordinate(24.02, -104.65), []) == math.inf


def test_empty_path_is_always_off_route():
    assert is_off_route(Coordinate(24.02, -104.65), [])


def test_point_on_path_is_on_route():
    assert not is_off_route(Coordinate(24.025, -104.655), PATH)


def test_off_route_uses_nearest_sampled_point():
    # ~220 m north of the middle vertex
    position = Coordinate(24.027, -104.655)
    nearest = distance_to_path(position, PATH)

    assert nearest == pytest.approx(distance_meters(position, PATH[1]))
    assert is_off_route(position, PATH, threshold_m=150)
    assert not is_off_route(position, PATH, threshold_m=300)


@pytest.mark.parametrize("offset_deg", [0.0005, 0.001, 0.002, 0.005])
def test_off_route_is_monotonic_in_threshold(offset_deg):
    position = Coordinate(24.025 + offset_deg, -104.655)
    distance = distance_to_path(position, PATH)

    thresholds = [25, 50, 100, 150, 300, 600, 1200]
    flags = [is_off_route(position, PATH, threshold_m=t) for t in thresholds]

    # once on route for a threshold, on route for every larger one
    assert flags == sorted(flags, reverse=True)
    assert all(flag == (distance > t) for flag, t in zip(flags, thresholds))


def test_coordinates_match_within_tolerance():
    a = Coordinate(24.025, -104.655)

    assert coordinates_match(a, Coordinate(24.02505, -104.65495))
    assert not coordinates_match(a, Coordinate(24.0252, -104.655))
    assert coordinates_match(a, Coordinate(24.0252, -104.655), tolerance_deg=1e-3)
