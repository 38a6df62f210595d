import asyncio
from datetime import datetime, timezone

import pytest

from src.route_tracker.models.domain import Coordinate, Delivery, LocationSample
from src.route_tracker.services.routing.models import RouteResult
from src.route_tracker.services.routing.polyline import encode_polyline
from src.route_tracker.services.tracking.location import SamplingPolicy
from src.route_tracker.services.tracking.manager import SessionManager
from src.route_tracker.services.tracking.session import TrackingState

ORIGIN = Coordinate(24.02, -104.65)
DESTINATION = Coordinate(24.03, -104.66)


class DummyRoutes:
    async def compute_route(self, origin, destination, stops, cancel=None):
        return RouteResult(encoded_polyline=encode_polyline([origin, *stops, destination]), optimized_order=[])


def _manager() -> SessionManager:
    return SessionManager(
        route_client_factory=DummyRoutes,
        policy_factory=lambda: SamplingPolicy(min_interval_seconds=0, min_displacement_m=0),
    )


def test_unknown_session_raises_key_error():
    with pytest.raises(KeyError):
        _manager().get("missing")


def test_pushed_sample_reaches_controller():
    async def scenario():
        manager = _manager()
        session = manager.start_shift(ORIGIN, DESTINATION, [Delivery(id="A", destination=Coordinate(24.025, -104.655))])
        manager.push_sample(session.session_id, LocationSample(ORIGIN, datetime.now(timezone.utc)))
        for _ in range(50):
            if session.state == TrackingState.TRACKING:
                break
            await asyncio.sleep(0)
        state = session.state
        await manager.shutdown()
        return state, manager

    state, manager = asyncio.run(scenario())

    assert state == TrackingState.TRACKING
    assert len(manager) == 0


def test_end_shift_removes_session():
    async def scenario():
        manager = _manager()
        first = manager.start_shift(ORIGIN, DESTINATION, [])
        second = manager.start_shift(ORIGIN, DESTINATION, [])
        await manager.end_shift(first.session_id)
        remaining = len(manager)
        with pytest.raises(KeyError):
            manager.get(first.session_id)
        await manager.end_shift(second.session_id)
        return remaining

    assert asyncio.run(scenario()) == 1
