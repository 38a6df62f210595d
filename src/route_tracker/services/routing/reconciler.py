"""Map the routing service's optimized waypoint order back onto deliveries.

The service only speaks in coordinates and indices; deliveries carry stable
ids. Reconciliation always produces a permutation of the input stops, even
when the optimized order is degenerate (out-of-range indices, duplicates,
dropped waypoints).
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ...models.domain import COORDINATE_TOLERANCE_DEG, Coordinate, Delivery
from ..geospatial import coordinates_match

# Returned for a single intermediate waypoint meaning "no permutation needed"
SINGLE_STOP_SENTINEL = -1

logger = logging.getLogger(__name__)


class WaypointReconciler:
    def __init__(self, tolerance_deg: float = COORDINATE_TOLERANCE_DEG) -> None:
        self.tolerance_deg = tolerance_deg

    def reconcile(
        self,
        order: Iterable[int],
        stops: Sequence[Delivery],
        coords: Sequence[Coordinate] | None = None,
    ) -> list[Delivery]:
        """Resequence ``stops`` following the optimized ``order``.

        Args:
            order: Optimized visiting order, as indices into ``coords``
            stops: Deliveries that were sent to the routing service
            coords: Coordinates sent as intermediates (defaults to the stops' destinations)

        Returns:
            Every delivery of ``stops`` exactly once, in visiting order
        """
        stops = list(stops)
        order = list(order)
        if coords is None:
            coords = [stop.destination for stop in stops]

        if len(stops) == 1 and order == [SINGLE_STOP_SENTINEL]:
            return stops

        placed = [False] * len(stops)
        ordered: list[Delivery] = []
        for index in order:
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(coords):
                logger.debug(f"Ignoring waypoint index {index!r} outside [0, {len(coords)})")
                continue
            target = coords[index]
            for position, stop in enumerate(stops):
                if not placed[position] and coordinates_match(stop.destination, target, self.tolerance_deg):
                    placed[position] = True
                    ordered.append(stop)
                    break

        leftovers = [stop for position, stop in enumerate(stops) if not placed[position]]
        if leftovers:
            logger.debug(f"Appending {len(leftovers)} stops missing from the optimized order")
        ordered.extend(leftovers)
        return ordered


def reconcile_stops(
    order: Iterable[int],
    stops: Sequence[Delivery],
    coords: Sequence[Coordinate] | None = None,
    tolerance_deg: float = COORDINATE_TOLERANCE_DEG,
) -> list[Delivery]:
    return WaypointReconciler(tolerance_deg).reconcile(order, stops, coords)


def align_with_stops(ordered: Sequence[Delivery], stops: Sequence[Delivery]) -> list[Delivery]:
    """Keep an existing visiting order valid against a refreshed stop list.

    Ids no longer present are dropped, surviving ids take the fresh record, and
    new stops are appended in their given order.
    """
    current = {stop.id: stop for stop in stops}
    aligned: list[Delivery] = []
    seen: set[str] = set()
    for stop in ordered:
        if stop.id in current and stop.id not in seen:
            aligned.append(current[stop.id])
            seen.add(stop.id)
    for stop in stops:
        if stop.id not in seen:
            aligned.append(stop)
            seen.add(stop.id)
    return aligned
