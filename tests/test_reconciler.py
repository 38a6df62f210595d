import pytest

from src.route_tracker.models.domain import Coordinate, Delivery, DeliveryStatus
from src.route_tracker.services.routing.reconciler import (
    SINGLE_STOP_SENTINEL,
    WaypointReconciler,
    align_with_stops,
    reconcile_stops,
)


def _delivery(did: str, lat: float, lon: float, status: DeliveryStatus = DeliveryStatus.PENDING) -> Delivery:
    return Delivery(id=did, destination=Coordinate(lat, lon), status=status)


@pytest.fixture
def stops() -> list[Delivery]:
    return [
        _delivery("A", 24.025, -104.655),
        _delivery("B", 24.028, -104.657),
        _delivery("C", 24.031, -104.652),
    ]


def _ids(deliveries):
    return [d.id for d in deliveries]


def test_reconcile_follows_optimized_order(stops):
    assert _ids(reconcile_stops([2, 0, 1], stops)) == ["C", "A", "B"]


def test_reconcile_two_stops_reversed():
    stops = [_delivery("A", 24.025, -104.655), _delivery("B", 24.028, -104.657)]
    assert _ids(reconcile_stops([1, 0], stops)) == ["B", "A"]


@pytest.mark.parametrize(
    "order",
    [
        [],
        [7, -3, 3],
        [1, 1, 1],
        [2, 2, 0],
        [True, 0],
        ["1", 2],
    ],
)
def test_reconcile_always_returns_a_permutation(stops, order):
    result = reconcile_stops(order, stops)

    assert len(result) == len(stops)
    assert sorted(_ids(result)) == sorted(_ids(stops))


def test_reconcile_appends_missing_stops_in_input_order(stops):
    assert _ids(reconcile_stops([1], stops)) == ["B", "A", "C"]


def test_reconcile_ignores_out_of_range_indices(stops):
    assert _ids(reconcile_stops([5, 2, -1], stops)) == ["C", "A", "B"]


def test_single_stop_sentinel_keeps_input():
    only = [_delivery("A", 24.025, -104.655)]
    assert reconcile_stops([SINGLE_STOP_SENTINEL], only) == only


def test_duplicate_destinations_are_each_placed_once():
    stops = [
        _delivery("A", 24.025, -104.655),
        _delivery("B", 24.025, -104.655),
        _delivery("C", 24.028, -104.657),
    ]

    result = reconcile_stops([2, 1, 0], stops)

    assert _ids(result) == ["C", "A", "B"]


def test_reconcile_matches_within_tolerance(stops):
    # the service echoes slightly rounded coordinates
    coords = [Coordinate(24.02504, -104.65496), Coordinate(24.02803, -104.65702), Coordinate(24.031, -104.652)]
    reconciler = WaypointReconciler(tolerance_deg=1e-4)

    assert _ids(reconciler.reconcile([1, 2, 0], stops, coords)) == ["B", "C", "A"]


def test_align_drops_closed_ids_and_appends_new(stops):
    ordered = [stops[2], stops[0], stops[1]]
    refreshed = [
        _delivery("A", 24.025, -104.655, DeliveryStatus.EN_ROUTE),
        _delivery("C", 24.031, -104.652),
        _delivery("D", 24.04, -104.66),
    ]

    aligned = align_with_stops(ordered, refreshed)

    assert _ids(aligned) == ["C", "A", "D"]
    assert aligned[1].status == DeliveryStatus.EN_ROUTE
