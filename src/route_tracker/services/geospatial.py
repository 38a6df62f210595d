"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from ..models.domain import COORDINATE_TOLERANCE_DEG, Coordinate

EARTH_RADIUS_M = 6_371_000.0
DEFAULT_OFF_ROUTE_THRESHOLD_M = 150.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def distance_to_path(position: Coordinate, path: Sequence[Coordinate]) -> float:
    """Distance from ``position`` to the nearest sampled point of ``path``.

    This samples the path's vertices instead of projecting onto segments, which
    is adequate because routing services return densely sampled polylines.
    Returns ``inf`` for an empty path.
    """

    return min((distance_meters(position, point) for point in path), default=math.inf)


def is_off_route(
    position: Coordinate,
    path: Sequence[Coordinate],
    threshold_m: float = DEFAULT_OFF_ROUTE_THRESHOLD_M,
) -> bool:
    """Return True if every point of ``path`` is farther than ``threshold_m``.

    An empty path is always off route so that the first calculation is forced.
    """

    if not path:
        return True
    return distance_to_path(position, path) > threshold_m


def coordinates_match(a: Coordinate, b: Coordinate, tolerance_deg: float = COORDINATE_TOLERANCE_DEG) -> bool:
    return a.matches(b, tolerance_deg)
