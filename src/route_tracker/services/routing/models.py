"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(slots=True)
class RouteResult:
    encoded_polyline: str
    # optimized_order[i] is the index into the requested stops of the i-th stop to visit
    optimized_order: List[int] = field(default_factory=list)
    distance_meters: Optional[int] = None
    duration_seconds: Optional[float] = None
