"""Driver-facing progress statistics derived from the delivery snapshot."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from ..config import settings
from ..models.domain import Coordinate, Delivery, DeliveryStatus
from .geospatial import distance_meters


@dataclass(slots=True)
class ProgressSummary:
    total: int
    delivered: int
    failed: int
    remaining: int
    percent_complete: int


@dataclass(slots=True)
class RemainingEstimate:
    distance_m: float
    duration_min: int
    distance_text: str
    duration_text: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize_progress(deliveries: Iterable[Delivery]) -> ProgressSummary:
    """Count delivered, failed and remaining packages.

    Nothing is cached; call it again whenever the delivery set changes.
    """
    deliveries = list(deliveries)
    total = len(deliveries)
    delivered = sum(1 for d in deliveries if d.status == DeliveryStatus.DELIVERED)
    failed = sum(1 for d in deliveries if d.status == DeliveryStatus.FAILED)
    percent = _round_half_up(100 * (delivered + failed) / total) if total else 0
    return ProgressSummary(
        total=total,
        delivered=delivered,
        failed=failed,
        remaining=total - delivered - failed,
        percent_complete=percent,
    )


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{_round_half_up(distance_km * 1000)} m"
    return f"{distance_km:.1f} km"


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}m"


def estimate_remaining(
    position: Coordinate,
    ordered_stops: Sequence[Delivery],
    destination: Coordinate,
    average_speed_kmh: float | None = None,
) -> RemainingEstimate:
    """Straight-line distance from ``position`` through the open stops to ``destination``.

    Duration assumes a constant average city speed.
    """
    speed = average_speed_kmh or settings.average_speed_kmh
    legs = [stop.destination for stop in ordered_stops if not stop.status.is_closed]
    legs.append(destination)

    total_m = 0.0
    current = position
    for point in legs:
        total_m += distance_meters(current, point)
        current = point

    distance_km = total_m / 1000
    minutes = _round_half_up(distance_km / speed * 60)
    return RemainingEstimate(
        distance_m=total_m,
        duration_min=minutes,
        distance_text=format_distance(distance_km),
        duration_text=format_duration(minutes),
    )
