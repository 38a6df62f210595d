"""HTTP client for the external routing/optimization service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import httpx

from ...config import settings
from ...errors import RouteCanceled, RouteComputationFailed
from ...models.domain import Coordinate
from .models import RouteResult

FIELD_MASK = (
    "routes.polyline.encodedPolyline,"
    "routes.optimizedIntermediateWaypointIndex,"
    "routes.distanceMeters,"
    "routes.duration"
)

logger = logging.getLogger(__name__)


def _coordinate_payload(coordinate: Coordinate) -> dict[str, float]:
    return {"latitude": coordinate.latitude, "longitude": coordinate.longitude}


def build_route_payload(
    origin: Coordinate, destination: Coordinate, stops: Sequence[Coordinate]
) -> dict[str, Any]:
    return {
        "origin": _coordinate_payload(origin),
        "destination": _coordinate_payload(destination),
        "intermediates": [_coordinate_payload(stop) for stop in stops],
    }


def _parse_duration(value: Any) -> float | None:
    # durations are serialized as "123s" or "123.5s"
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).rstrip("s"))
    except ValueError:
        logger.debug(f"Ignoring unparseable route duration {value!r}")
        return None


def parse_route_response(data: Any) -> RouteResult:
    """Extract the first route from a routing service response.

    A response without any route is a computation failure. A missing waypoint
    order means the service did not permute anything and yields an empty list.
    Index values are passed through as-is; the reconciler filters them.
    """
    routes = data.get("routes") if isinstance(data, dict) else None
    if not routes:
        raise RouteComputationFailed("Could not compute route.")

    route = routes[0]
    encoded = (route.get("polyline") or {}).get("encodedPolyline") or ""
    raw_order = route.get("optimizedIntermediateWaypointIndex") or []
    order = [index for index in raw_order if isinstance(index, int) and not isinstance(index, bool)]
    if len(order) != len(raw_order):
        logger.warning(f"Dropped {len(raw_order) - len(order)} non-integer waypoint indices from route response")

    distance = route.get("distanceMeters")
    return RouteResult(
        encoded_polyline=encoded,
        optimized_order=order,
        distance_meters=int(distance) if isinstance(distance, (int, float)) else None,
        duration_seconds=_parse_duration(route.get("duration")),
    )


class RouteClient:
    """Wraps one outbound call to the routing service.

    Each call is bounded by ``timeout`` and can be aborted with a cancellation
    token (an ``asyncio.Event``). There is no retry here; retry policy belongs
    to the caller.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.routes_api_url
        if not self.base_url:
            raise ValueError("Routing service URL is not configured.")
        self.api_key = api_key if api_key is not None else settings.routes_api_key
        self.timeout = timeout if timeout is not None else settings.route_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            transport=self._transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Goog-Api-Key"] = self.api_key
            headers["X-Goog-FieldMask"] = FIELD_MASK
        return headers

    async def _post(self, payload: dict[str, Any]) -> RouteResult:
        try:
            async with self._get_client() as client:
                response = await client.post(self.base_url, json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            logger.warning(f"Routing service timed out after {self.timeout}s: {exc}")
            raise RouteComputationFailed("Could not compute route.") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(f"Routing service returned HTTP {exc.response.status_code}")
            raise RouteComputationFailed("Could not compute route.") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Routing service request failed: {exc}")
            raise RouteComputationFailed("Could not compute route.") from exc

        try:
            return parse_route_response(data)
        except (KeyError, TypeError, AttributeError, IndexError) as exc:
            logger.warning(f"Routing service returned a malformed route: {exc!r}")
            raise RouteComputationFailed("Could not compute route.") from exc

    async def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        stops: Sequence[Coordinate],
        cancel: asyncio.Event | None = None,
    ) -> RouteResult:
        """Request an optimized route through ``stops``.

        Args:
            origin: Start of the route
            destination: End of the route
            stops: Intermediate waypoints to visit, in any order
            cancel: Token that aborts the request when set

        Returns:
            RouteResult with the encoded path and the optimized stop order

        Raises:
            RouteCanceled: ``cancel`` was set before the response arrived
            RouteComputationFailed: network, service or timeout failure
        """
        if cancel is not None and cancel.is_set():
            raise RouteCanceled("Route request was superseded before it was sent.")

        payload = build_route_payload(origin, destination, stops)
        logger.debug(f"Requesting route with {len(stops)} intermediate stops")

        request = asyncio.ensure_future(self._post(payload))
        waiters: set[asyncio.Future] = {request}
        cancel_wait: asyncio.Future | None = None
        if cancel is not None:
            cancel_wait = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if cancel_wait is not None and cancel_wait in done:
            await asyncio.gather(request, return_exceptions=True)
            raise RouteCanceled("Route request was superseded.")
        if request in done:
            return request.result()

        await asyncio.gather(request, return_exceptions=True)
        logger.warning(f"Routing service did not answer within {self.timeout}s")
        raise RouteComputationFailed("Could not compute route.")
