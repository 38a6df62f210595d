"""Per-shift route session state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ...models.domain import Coordinate, Delivery


class TrackingState(str, Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    TRACKING = "tracking"


class LocationStatus(str, Enum):
    AWAITING = "awaiting"
    ACTIVE = "active"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True)
class RouteSession:
    """State owned by one RecalculationController.

    ``ordered_stops`` is always a permutation of ``stops``.
    """

    origin: Coordinate
    destination: Coordinate
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    deliveries: List[Delivery] = field(default_factory=list)
    stops: List[Delivery] = field(default_factory=list)
    path: List[Coordinate] = field(default_factory=list)
    ordered_stops: List[Delivery] = field(default_factory=list)
    state: TrackingState = TrackingState.IDLE
    location_status: LocationStatus = LocationStatus.AWAITING
    last_recalculated_at: Optional[float] = None
    in_flight: bool = False
    request_seq: int = 0
    last_position: Optional[Coordinate] = None
    last_error: Optional[str] = None
    route_distance_m: Optional[int] = None
    route_duration_s: Optional[float] = None
    updated_at: Optional[datetime] = None

    @property
    def has_path(self) -> bool:
        return bool(self.path)

    def reset(self) -> None:
        self.deliveries = []
        self.stops = []
        self.path = []
        self.ordered_stops = []
        self.state = TrackingState.IDLE
        self.location_status = LocationStatus.AWAITING
        self.last_recalculated_at = None
        self.in_flight = False
        self.last_position = None
        self.last_error = None
        self.route_distance_m = None
        self.route_duration_s = None
        self.updated_at = None
