"""Location sources and subscriptions.

A ``LocationSource`` stands for the device's positioning capability. Calling
``subscribe()`` opens the only subscription the source allows at a time; the
subscription yields samples that clear the sampling policy until it is closed.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Iterable, Optional

from ...config import Settings, settings
from ...errors import PermissionDenied
from ...models.domain import LocationSample
from ..geospatial import distance_meters

logger = logging.getLogger(__name__)


class LocationAccuracy(str, Enum):
    LOWEST = "lowest"
    LOW = "low"
    BALANCED = "balanced"
    HIGH = "high"
    HIGHEST = "highest"


@dataclass(frozen=True, slots=True)
class SamplingPolicy:
    accuracy: LocationAccuracy = LocationAccuracy.HIGH
    min_interval_seconds: float = 15.0
    min_displacement_m: float = 20.0

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "SamplingPolicy":
        config = config or settings
        return cls(
            accuracy=LocationAccuracy(config.location_accuracy),
            min_interval_seconds=config.location_interval_seconds,
            min_displacement_m=config.location_min_displacement_m,
        )

    def accepts(self, previous: Optional[LocationSample], candidate: LocationSample) -> bool:
        """Return True if ``candidate`` clears both the time and displacement minimums."""
        if previous is None:
            return True
        elapsed = (candidate.timestamp - previous.timestamp).total_seconds()
        if elapsed < self.min_interval_seconds:
            return False
        return distance_meters(previous.coordinate, candidate.coordinate) >= self.min_displacement_m


class LocationSource(ABC):
    def __init__(self, policy: SamplingPolicy | None = None) -> None:
        self.policy = policy or SamplingPolicy.from_settings()
        self._subscription: LocationSubscription | None = None

    @property
    def in_use(self) -> bool:
        return self._subscription is not None

    async def request_permission(self) -> bool:
        return True

    @abstractmethod
    def _raw_samples(self) -> AsyncIterator[LocationSample]:
        """Yield every sample the sensor produces, unfiltered."""

    async def _stop(self) -> None:
        """Release the underlying sensor."""

    def subscribe(self) -> "LocationSubscription":
        if self._subscription is not None:
            raise RuntimeError("Location source already has an active subscription.")
        self._subscription = LocationSubscription(self)
        return self._subscription

    def _release(self, subscription: "LocationSubscription") -> None:
        if self._subscription is subscription:
            self._subscription = None


class LocationSubscription:
    """Async iterator over filtered samples; use as an async context manager."""

    def __init__(self, source: LocationSource) -> None:
        self._source = source
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "LocationSubscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def __aiter__(self) -> AsyncIterator[LocationSample]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[LocationSample]:
        if self._closed:
            return
        if not await self._source.request_permission():
            await self.close()
            raise PermissionDenied("Location permission was not granted.")

        policy = self._source.policy
        previous: Optional[LocationSample] = None
        async for sample in self._source._raw_samples():
            if self._closed:
                break
            if not policy.accepts(previous, sample):
                logger.debug(f"Suppressed location sample at {sample.timestamp.isoformat()}")
                continue
            previous = sample
            yield sample

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._source._release(self)
        await self._source._stop()


class QueueLocationSource(LocationSource):
    """Source fed by pushed samples, e.g. from a device bridge or the HTTP API."""

    def __init__(self, policy: SamplingPolicy | None = None, permission_granted: bool = True) -> None:
        super().__init__(policy)
        self.permission_granted = permission_granted
        self._queue: asyncio.Queue[LocationSample | None] = asyncio.Queue()

    def push(self, sample: LocationSample) -> None:
        self._queue.put_nowait(sample)

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def _raw_samples(self) -> AsyncIterator[LocationSample]:
        queue = self._queue
        while True:
            sample = await queue.get()
            if sample is None:
                return
            yield sample

    async def _stop(self) -> None:
        # wake the pending reader and drop samples pushed after the sensor was released
        self._queue.put_nowait(None)
        self._queue = asyncio.Queue()


class ReplayLocationSource(LocationSource):
    """Source that plays back a recorded or simulated track."""

    def __init__(
        self,
        samples: Iterable[LocationSample],
        policy: SamplingPolicy | None = None,
        pace_seconds: float = 0.0,
        permission_granted: bool = True,
    ) -> None:
        super().__init__(policy)
        self._samples = list(samples)
        self.pace_seconds = pace_seconds
        self.permission_granted = permission_granted

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def _raw_samples(self) -> AsyncIterator[LocationSample]:
        for sample in self._samples:
            if self.pace_seconds:
                await asyncio.sleep(self.pace_seconds)
            else:
                await asyncio.sleep(0)
            yield sample
