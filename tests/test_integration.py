import time

import pytest
from fastapi.testclient import TestClient

from src.route_tracker.main import create_app
from src.route_tracker.services.routing.models import RouteResult
from src.route_tracker.services.routing.polyline import encode_polyline
from src.route_tracker.services.tracking.location import SamplingPolicy
from src.route_tracker.services.tracking.manager import SessionManager

ORIGIN = {"latitude": 24.02, "longitude": -104.65}
DESTINATION = {"latitude": 24.03, "longitude": -104.66}
DELIVERIES = [
    {"id": "A", "destination": {"latitude": 24.025, "longitude": -104.655}},
    {"id": "B", "destination": {"latitude": 24.028, "longitude": -104.657}, "instructions": "Gate code 1234"},
]


class DummyRoutes:
    def __init__(self):
        self.calls = 0

    async def compute_route(self, origin, destination, stops, cancel=None):
        self.calls += 1
        path = [origin, *reversed(list(stops)), destination]
        order = [1, 0] if len(stops) == 2 else []
        return RouteResult(encoded_polyline=encode_polyline(path), optimized_order=order, distance_meters=1830)


@pytest.fixture
def routes() -> DummyRoutes:
    return DummyRoutes()


@pytest.fixture
def api_client(routes: DummyRoutes):
    manager = SessionManager(
        route_client_factory=lambda: routes,
        policy_factory=lambda: SamplingPolicy(min_interval_seconds=0, min_displacement_m=0),
    )
    with TestClient(create_app(manager)) as client:
        yield client


def _start(client: TestClient, **overrides) -> dict:
    payload = {"origin": ORIGIN, "destination": DESTINATION, "deliveries": DELIVERIES}
    payload.update(overrides)
    response = client.post("/api/sessions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _wait_for(client: TestClient, session_id: str, predicate) -> dict:
    for _ in range(100):
        body = client.get(f"/api/sessions/{session_id}").json()
        if predicate(body):
            return body
        time.sleep(0.01)
    raise AssertionError(f"session never reached expected state: {body}")


def test_health(api_client: TestClient):
    assert api_client.get("/api/health").json() == {"status": "ok"}
    body = api_client.get("/api/health/routes").json()
    assert body["debounce_seconds"] == 10
    assert body["off_route_threshold_m"] == 150


def test_root_reports_active_sessions(api_client: TestClient):
    _start(api_client)
    body = api_client.get("/").json()
    assert body["status"] == "running"
    assert body["active_sessions"] == 1


def test_start_session_waits_for_first_fix(api_client: TestClient, routes: DummyRoutes):
    body = _start(api_client)

    assert body["state"] == "idle"
    assert body["location_status"] == "awaiting"
    assert body["path"] == []
    assert [stop["id"] for stop in body["ordered_stops"]] == ["A", "B"]
    assert body["progress"]["total"] == 2
    assert routes.calls == 0


def test_first_location_computes_route(api_client: TestClient, routes: DummyRoutes):
    session_id = _start(api_client)["session_id"]

    response = api_client.post(f"/api/sessions/{session_id}/locations", json=ORIGIN)
    assert response.status_code == 202

    body = _wait_for(api_client, session_id, lambda b: b["state"] == "tracking")
    assert body["location_status"] == "active"
    assert [stop["id"] for stop in body["ordered_stops"]] == ["B", "A"]
    assert body["ordered_stops"][0]["instructions"] == "Gate code 1234"
    assert len(body["path"]) == 4
    assert body["route_distance_m"] == 1830
    assert routes.calls == 1


def test_progress_reflects_delivery_updates(api_client: TestClient):
    session_id = _start(api_client)["session_id"]
    api_client.post(f"/api/sessions/{session_id}/locations", json=ORIGIN)
    _wait_for(api_client, session_id, lambda b: b["state"] == "tracking")

    updated = [dict(DELIVERIES[0], status="delivered"), DELIVERIES[1]]
    response = api_client.put(f"/api/sessions/{session_id}/deliveries", json={"deliveries": updated})
    assert response.status_code == 200
    assert [stop["id"] for stop in response.json()["ordered_stops"]] == ["B"]

    progress = api_client.get(f"/api/sessions/{session_id}/progress").json()
    assert progress["delivered"] == 1
    assert progress["remaining"] == 1
    assert progress["percent_complete"] == 50
    assert progress["remaining_distance"] is not None
    assert progress["remaining_duration"].endswith("min")


def test_forced_recalculation(api_client: TestClient, routes: DummyRoutes):
    session_id = _start(api_client)["session_id"]
    api_client.post(f"/api/sessions/{session_id}/locations", json=ORIGIN)
    _wait_for(api_client, session_id, lambda b: b["state"] == "tracking")

    response = api_client.post(f"/api/sessions/{session_id}/recalculate")
    assert response.status_code == 202
    assert response.json()["request_seq"] == 2

    _wait_for(api_client, session_id, lambda b: b["state"] == "tracking" and not b["in_flight"])
    assert routes.calls == 2


def test_permission_denied_session(api_client: TestClient, routes: DummyRoutes):
    session_id = _start(api_client, location_permission=False)["session_id"]

    body = _wait_for(api_client, session_id, lambda b: b["location_status"] == "unavailable")
    assert body["state"] == "idle"
    assert body["last_error"] == "Location permission was not granted."
    assert routes.calls == 0


def test_end_session(api_client: TestClient):
    session_id = _start(api_client)["session_id"]

    assert api_client.delete(f"/api/sessions/{session_id}").status_code == 204
    assert api_client.get(f"/api/sessions/{session_id}").status_code == 404


def test_unknown_session_returns_404(api_client: TestClient):
    response = api_client.get("/api/sessions/does-not-exist")
    assert response.status_code == 404
    assert "does-not-exist" in response.json()["detail"]
    assert api_client.post("/api/sessions/does-not-exist/locations", json=ORIGIN).status_code == 404


def test_start_requires_deliveries_or_unit(api_client: TestClient):
    response = api_client.post("/api/sessions", json={"origin": ORIGIN, "destination": DESTINATION})
    assert response.status_code == 400


def test_start_with_unconfigured_assignments_backend(api_client: TestClient, monkeypatch):
    from src.route_tracker.config import settings

    monkeypatch.setattr(settings, "assignments_api_url", None)
    response = api_client.post(
        "/api/sessions", json={"origin": ORIGIN, "destination": DESTINATION, "unit_id": "UNIT-7"}
    )
    assert response.status_code == 503


def test_invalid_coordinates_rejected(api_client: TestClient):
    response = api_client.post(
        "/api/sessions",
        json={"origin": {"latitude": 100, "longitude": 0}, "destination": DESTINATION, "deliveries": DELIVERIES},
    )
    assert response.status_code == 422


def test_unconfigured_routing_service_returns_503(monkeypatch):
    from src.route_tracker.config import settings

    monkeypatch.setattr(settings, "routes_api_url", None)
    with TestClient(create_app(SessionManager())) as client:
        response = client.post(
            "/api/sessions", json={"origin": ORIGIN, "destination": DESTINATION, "deliveries": DELIVERIES}
        )
    assert response.status_code == 503
