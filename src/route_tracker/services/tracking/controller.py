"""Route recalculation state machine.

The controller decides when the planned route is stale and owns every
mutation of its ``RouteSession``:

    idle --first fix--> computing --success--> tracking --off route + cool-down--> computing

Automatic triggers are suppressed while a request is in flight. A forced
trigger (``request_recalculation``) supersedes the in-flight request instead:
its cancellation token is set and its result, should it still arrive, is
discarded because its sequence number is no longer the latest.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol, Sequence

from ...config import settings
from ...errors import PermissionDenied, RouteCanceled, RouteComputationFailed, TrackingError
from ...models.domain import Coordinate, Delivery, LocationSample
from ..geospatial import is_off_route
from ..routing.models import RouteResult
from ..routing.polyline import decode_polyline
from ..routing.reconciler import WaypointReconciler, align_with_stops
from .location import LocationSource
from .session import LocationStatus, RouteSession, TrackingState

logger = logging.getLogger(__name__)

ErrorListener = Callable[[TrackingError], None]
UpdateListener = Callable[[RouteSession], None]


def _open_stops(deliveries: Iterable[Delivery]) -> list[Delivery]:
    """Deliveries still to visit; the first record wins when an id repeats."""
    stops: list[Delivery] = []
    seen: set[str] = set()
    for delivery in deliveries:
        if delivery.status.is_closed:
            continue
        if delivery.id in seen:
            logger.warning(f"Ignoring duplicate delivery id {delivery.id!r}")
            continue
        seen.add(delivery.id)
        stops.append(delivery)
    return stops


class RouteProvider(Protocol):
    async def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        stops: Sequence[Coordinate],
        cancel: asyncio.Event | None = None,
    ) -> RouteResult: ...


class RecalculationController:
    def __init__(
        self,
        session: RouteSession,
        route_client: RouteProvider,
        *,
        debounce_seconds: float | None = None,
        off_route_threshold_m: float | None = None,
        tolerance_deg: float | None = None,
        route_from_current_position: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_error: ErrorListener | None = None,
        on_update: UpdateListener | None = None,
    ) -> None:
        self.session = session
        self.route_client = route_client
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.route_debounce_seconds
        )
        self.off_route_threshold_m = (
            off_route_threshold_m if off_route_threshold_m is not None else settings.off_route_threshold_m
        )
        self.reconciler = WaypointReconciler(
            tolerance_deg if tolerance_deg is not None else settings.coordinate_tolerance_deg
        )
        self.route_from_current_position = (
            route_from_current_position
            if route_from_current_position is not None
            else settings.route_from_current_position
        )
        self.clock = clock
        self._error_listeners: list[ErrorListener] = [on_error] if on_error else []
        self._update_listeners: list[UpdateListener] = [on_update] if on_update else []
        self._cancel_token: asyncio.Event | None = None
        self._tasks: set[asyncio.Task] = set()
        self._run_task: asyncio.Task | None = None
        self._closed = False

    @property
    def state(self) -> TrackingState:
        return self.session.state

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Trigger policy
    # ------------------------------------------------------------------

    def should_recalculate(self, position: Coordinate, now: float | None = None) -> bool:
        session = self.session
        if session.last_recalculated_at is None:
            return True
        if session.in_flight:
            return False
        if not is_off_route(position, session.path, self.off_route_threshold_m):
            return False
        now = self.clock() if now is None else now
        return now - session.last_recalculated_at >= self.debounce_seconds

    def handle_sample(self, sample: LocationSample) -> Optional[asyncio.Task]:
        """Process one location sample; returns the route task if one was issued."""
        if self._closed:
            return None
        session = self.session
        session.last_position = sample.coordinate
        session.location_status = LocationStatus.ACTIVE

        now = self.clock()
        if not self.should_recalculate(sample.coordinate, now):
            return None
        if session.last_recalculated_at is None:
            logger.info(f"First location fix for session {session.session_id}, computing route")
        else:
            logger.info(f"Session {session.session_id} is off route, recalculating")
        return self._issue_request(now)

    def request_recalculation(self) -> Optional[asyncio.Task]:
        """Force a new route request, superseding any request in flight."""
        if self._closed:
            return None
        return self._issue_request(self.clock())

    # ------------------------------------------------------------------
    # Delivery read model
    # ------------------------------------------------------------------

    def update_deliveries(self, deliveries: Iterable[Delivery]) -> Optional[asyncio.Task]:
        """Replace the delivery snapshot and keep the stop order consistent with it.

        A recalculation is forced only when stops appear that the current route
        does not visit; delivered or failed stops simply drop out of the order.
        """
        session = self.session
        session.deliveries = list(deliveries)
        previous_ids = {stop.id for stop in session.stops}
        session.stops = _open_stops(session.deliveries)
        session.ordered_stops = align_with_stops(session.ordered_stops, session.stops)
        self._emit_update()

        added = {stop.id for stop in session.stops} - previous_ids
        if added and session.last_recalculated_at is not None:
            logger.info(f"{len(added)} new stops for session {session.session_id}, recalculating")
            return self.request_recalculation()
        return None

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def _cancel_in_flight(self) -> None:
        if self._cancel_token is not None:
            self._cancel_token.set()
            self._cancel_token = None

    def _issue_request(self, now: float) -> asyncio.Task:
        session = self.session
        self._cancel_in_flight()

        session.request_seq += 1
        seq = session.request_seq
        session.in_flight = True
        session.last_recalculated_at = now
        session.state = TrackingState.COMPUTING

        origin = session.origin
        if self.route_from_current_position and session.last_position is not None:
            origin = session.last_position
        stops = list(session.stops)
        coords = [stop.destination for stop in stops]

        token = asyncio.Event()
        self._cancel_token = token
        task = asyncio.create_task(self._run_request(seq, origin, stops, coords, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_request(
        self,
        seq: int,
        origin: Coordinate,
        stops: list[Delivery],
        coords: list[Coordinate],
        token: asyncio.Event,
    ) -> None:
        session = self.session
        try:
            result = await self.route_client.compute_route(origin, session.destination, coords, cancel=token)
        except RouteCanceled:
            logger.debug(f"Route request {seq} was superseded")
            return
        except RouteComputationFailed as exc:
            self._fail_request(seq, exc)
            return

        if seq != session.request_seq:
            logger.debug(f"Discarding stale route response {seq} (latest is {session.request_seq})")
            return

        try:
            path = decode_polyline(result.encoded_polyline)
        except (IndexError, TypeError) as exc:
            logger.warning(f"Route request {seq} returned an undecodable polyline: {exc}")
            self._fail_request(seq, RouteComputationFailed("Could not compute route."))
            return
        self._apply_result(result, path, stops, coords)

    def _finish_request(self) -> None:
        self.session.in_flight = False
        self._cancel_token = None

    def _fail_request(self, seq: int, error: RouteComputationFailed) -> None:
        session = self.session
        if seq != session.request_seq:
            logger.debug(f"Ignoring failure of stale route request {seq}")
            return
        self._finish_request()
        session.state = TrackingState.TRACKING if session.has_path else TrackingState.IDLE
        session.last_error = str(error)
        logger.warning(f"Route request {seq} for session {session.session_id} failed: {error}")
        self._emit_error(error)
        self._emit_update()

    def _apply_result(
        self,
        result: RouteResult,
        path: list[Coordinate],
        stops: list[Delivery],
        coords: list[Coordinate],
    ) -> None:
        session = self.session
        ordered = self.reconciler.reconcile(result.optimized_order, stops, coords)
        session.path = path
        session.ordered_stops = align_with_stops(ordered, session.stops)
        session.route_distance_m = result.distance_meters
        session.route_duration_s = result.duration_seconds
        session.state = TrackingState.TRACKING
        session.last_error = None
        session.updated_at = datetime.now(timezone.utc)
        self._finish_request()
        logger.info(
            f"Route {session.request_seq} applied for session {session.session_id}: "
            f"{len(session.path)} path points, {len(session.ordered_stops)} stops"
        )
        self._emit_update()

    def _emit_error(self, error: TrackingError) -> None:
        for listener in self._error_listeners:
            listener(error)

    def _emit_update(self) -> None:
        for listener in self._update_listeners:
            listener(self.session)

    # ------------------------------------------------------------------
    # Shift lifecycle
    # ------------------------------------------------------------------

    async def run(self, source: LocationSource) -> None:
        """Consume location samples in arrival order until the subscription ends."""
        session = self.session
        try:
            async with source.subscribe() as subscription:
                async for sample in subscription:
                    self.handle_sample(sample)
        except PermissionDenied as exc:
            session.location_status = LocationStatus.UNAVAILABLE
            session.last_error = str(exc)
            logger.warning(f"Location unavailable for session {session.session_id}: {exc}")
            self._emit_error(exc)
            self._emit_update()

    def start(self, source: LocationSource) -> asyncio.Task:
        if self._run_task is not None and not self._run_task.done():
            raise RuntimeError("Controller is already consuming a location source.")
        self._run_task = asyncio.create_task(self.run(source))
        return self._run_task

    async def end_shift(self) -> None:
        """Stop sampling, cancel any route request and discard the session state."""
        if self._closed:
            return
        self._closed = True
        self._cancel_in_flight()

        pending = list(self._tasks)
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
            pending.append(self._run_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        logger.info(f"Shift ended for session {self.session.session_id}")
        self.session.reset()
