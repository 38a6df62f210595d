"""Domain models for deliveries, coordinates and location samples."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

# ~11 m at the equator
COORDINATE_TOLERANCE_DEG = 1e-4


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def matches(self, other: "Coordinate", tolerance: float = COORDINATE_TOLERANCE_DEG) -> bool:
        """Compare two coordinates within a per-axis tolerance in degrees."""
        return (
            abs(self.latitude - other.latitude) <= tolerance
            and abs(self.longitude - other.longitude) <= tolerance
        )


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    EN_ROUTE = "en_route"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_closed(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


@dataclass(slots=True)
class Delivery:
    """One package to be dropped off.

    Address fields are display-only; the tracking core reads ``id``,
    ``destination`` and ``status``.
    """

    id: str
    destination: Coordinate
    status: DeliveryStatus = DeliveryStatus.PENDING
    instructions: str = ""
    street: Optional[str] = None
    neighborhood: Optional[str] = None
    postal_code: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LocationSample:
    coordinate: Coordinate
    timestamp: datetime
    accuracy_m: Optional[float] = None
