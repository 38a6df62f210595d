"""Registry of active driver shifts served by the HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from ...models.domain import Coordinate, Delivery, LocationSample
from ..routing.client import RouteClient
from .controller import RecalculationController, RouteProvider
from .location import QueueLocationSource, SamplingPolicy
from .session import RouteSession

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrackedShift:
    controller: RecalculationController
    source: QueueLocationSource

    @property
    def session(self) -> RouteSession:
        return self.controller.session


class SessionManager:
    """Owns one controller and one location source per active shift.

    Must be used from the event loop that runs the controllers.
    """

    def __init__(
        self,
        route_client_factory: Callable[[], RouteProvider] = RouteClient,
        policy_factory: Callable[[], SamplingPolicy] = SamplingPolicy.from_settings,
    ) -> None:
        self.route_client_factory = route_client_factory
        self.policy_factory = policy_factory
        self._shifts: dict[str, TrackedShift] = {}

    def __len__(self) -> int:
        return len(self._shifts)

    def start_shift(
        self,
        origin: Coordinate,
        destination: Coordinate,
        deliveries: Iterable[Delivery],
        *,
        location_permission: bool = True,
    ) -> RouteSession:
        """Create a session, subscribe its location source and start tracking.

        Raises:
            ValueError: the routing service is not configured
        """
        route_client = self.route_client_factory()
        session = RouteSession(origin=origin, destination=destination)
        controller = RecalculationController(session, route_client)
        controller.update_deliveries(deliveries)

        source = QueueLocationSource(policy=self.policy_factory(), permission_granted=location_permission)
        controller.start(source)
        self._shifts[session.session_id] = TrackedShift(controller=controller, source=source)
        logger.info(f"Started shift {session.session_id} with {len(session.stops)} stops")
        return session

    def get(self, session_id: str) -> TrackedShift:
        try:
            return self._shifts[session_id]
        except KeyError:
            raise KeyError(f"Session '{session_id}' not found.") from None

    def push_sample(self, session_id: str, sample: LocationSample) -> None:
        self.get(session_id).source.push(sample)

    def update_deliveries(self, session_id: str, deliveries: Iterable[Delivery]) -> RouteSession:
        shift = self.get(session_id)
        shift.controller.update_deliveries(deliveries)
        return shift.session

    def recalculate(self, session_id: str) -> RouteSession:
        shift = self.get(session_id)
        shift.controller.request_recalculation()
        return shift.session

    async def end_shift(self, session_id: str) -> None:
        shift = self.get(session_id)
        del self._shifts[session_id]
        await shift.controller.end_shift()

    async def shutdown(self) -> None:
        for session_id in list(self._shifts):
            await self.end_shift(session_id)
