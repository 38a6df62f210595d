"""Tracking request/response schemas."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import Coordinate, Delivery, DeliveryStatus, LocationSample
from ..services.progress import estimate_remaining, summarize_progress
from ..services.tracking.session import LocationStatus, RouteSession, TrackingState


class CoordinateModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @classmethod
    def from_domain(cls, coordinate: Coordinate) -> "CoordinateModel":
        return cls(latitude=coordinate.latitude, longitude=coordinate.longitude)


class DeliveryModel(BaseModel):
    id: str
    destination: CoordinateModel
    status: DeliveryStatus = DeliveryStatus.PENDING
    instructions: str = ""
    street: Optional[str] = None
    neighborhood: Optional[str] = None
    postal_code: Optional[str] = None

    def to_domain(self) -> Delivery:
        return Delivery(
            id=self.id,
            destination=self.destination.to_domain(),
            status=self.status,
            instructions=self.instructions,
            street=self.street,
            neighborhood=self.neighborhood,
            postal_code=self.postal_code,
        )

    @classmethod
    def from_domain(cls, delivery: Delivery) -> "DeliveryModel":
        return cls(
            id=delivery.id,
            destination=CoordinateModel.from_domain(delivery.destination),
            status=delivery.status,
            instructions=delivery.instructions,
            street=delivery.street,
            neighborhood=delivery.neighborhood,
            postal_code=delivery.postal_code,
        )


class StartSessionRequest(BaseModel):
    origin: CoordinateModel
    destination: CoordinateModel
    deliveries: Optional[List[DeliveryModel]] = Field(
        default=None,
        description="Deliveries for the shift. If omitted, they are fetched for unit_id.",
    )
    unit_id: Optional[str] = Field(default=None, description="Vehicle whose assignments should be loaded.")
    day: Optional[date] = Field(default=None, description="Assignment day (defaults to today).")
    location_permission: bool = Field(
        default=True,
        description="Whether the driver granted access to the device location.",
    )


class LocationSampleModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: Optional[datetime] = None
    accuracy_m: Optional[float] = Field(default=None, ge=0)

    def to_domain(self) -> LocationSample:
        timestamp = self.timestamp or datetime.now(timezone.utc)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return LocationSample(
            coordinate=Coordinate(self.latitude, self.longitude),
            timestamp=timestamp,
            accuracy_m=self.accuracy_m,
        )


class UpdateDeliveriesRequest(BaseModel):
    deliveries: List[DeliveryModel]


class ProgressModel(BaseModel):
    total: int
    delivered: int
    failed: int
    remaining: int
    percent_complete: int
    remaining_distance: Optional[str] = None
    remaining_duration: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: str
    state: TrackingState
    location_status: LocationStatus
    in_flight: bool
    origin: CoordinateModel
    destination: CoordinateModel
    path: List[CoordinateModel]
    ordered_stops: List[DeliveryModel]
    last_error: Optional[str] = None
    route_distance_m: Optional[int] = None
    route_duration_s: Optional[float] = None
    updated_at: Optional[datetime] = None
    progress: ProgressModel


def progress_from_session(session: RouteSession) -> ProgressModel:
    summary = summarize_progress(session.deliveries)
    model = ProgressModel(
        total=summary.total,
        delivered=summary.delivered,
        failed=summary.failed,
        remaining=summary.remaining,
        percent_complete=summary.percent_complete,
    )
    if session.last_position is not None:
        estimate = estimate_remaining(session.last_position, session.ordered_stops, session.destination)
        model.remaining_distance = estimate.distance_text
        model.remaining_duration = estimate.duration_text
    return model


def session_to_response(session: RouteSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        state=session.state,
        location_status=session.location_status,
        in_flight=session.in_flight,
        origin=CoordinateModel.from_domain(session.origin),
        destination=CoordinateModel.from_domain(session.destination),
        path=[CoordinateModel.from_domain(point) for point in session.path],
        ordered_stops=[DeliveryModel.from_domain(stop) for stop in session.ordered_stops],
        last_error=session.last_error,
        route_distance_m=session.route_distance_m,
        route_duration_s=session.route_duration_s,
        updated_at=session.updated_at,
        progress=progress_from_session(session),
    )
