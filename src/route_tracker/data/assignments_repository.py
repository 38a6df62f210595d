"""Read-only access to the delivery-assignment backend."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable

import httpx

from ..config import settings
from ..errors import AssignmentsUnavailable
from ..models.domain import Coordinate, Delivery, DeliveryStatus

logger = logging.getLogger(__name__)

# The backend's own records use Spanish field names
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "delivery_id", "idPaquete"),
    "latitude": ("latitude", "lat", "latitud"),
    "longitude": ("longitude", "lng", "lon", "longitud"),
    "status": ("status", "estatus"),
    "instructions": ("instructions", "indicaciones"),
    "street": ("street", "calle"),
    "neighborhood": ("neighborhood", "colonia"),
    "postal_code": ("postal_code", "codigo_postal", "cp"),
}

_STATUS_ALIASES = {
    "pendiente": DeliveryStatus.PENDING,
    "en_ruta": DeliveryStatus.EN_ROUTE,
    "en ruta": DeliveryStatus.EN_ROUTE,
    "entregado": DeliveryStatus.DELIVERED,
    "fallido": DeliveryStatus.FAILED,
}


def _pick(record: dict[str, Any], field: str) -> Any:
    for key in _FIELD_ALIASES[field]:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _parse_status(value: Any) -> DeliveryStatus:
    if value is None:
        return DeliveryStatus.PENDING
    text = str(value).strip().lower()
    if text in _STATUS_ALIASES:
        return _STATUS_ALIASES[text]
    try:
        return DeliveryStatus(text)
    except ValueError:
        logger.warning(f"Unknown delivery status {value!r}, treating as pending")
        return DeliveryStatus.PENDING


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def parse_delivery(record: dict[str, Any]) -> Delivery:
    """Build a Delivery from one backend record.

    Raises:
        ValueError: the record has no id or no usable coordinates
    """
    delivery_id = _pick(record, "id")
    latitude = _pick(record, "latitude")
    longitude = _pick(record, "longitude")
    if delivery_id is None:
        raise ValueError("Delivery record is missing an id.")
    if latitude is None or longitude is None:
        raise ValueError(f"Delivery {delivery_id} is missing coordinates.")

    return Delivery(
        id=str(delivery_id),
        destination=Coordinate(float(latitude), float(longitude)),
        status=_parse_status(_pick(record, "status")),
        instructions=str(_pick(record, "instructions") or ""),
        street=_optional_str(_pick(record, "street")),
        neighborhood=_optional_str(_pick(record, "neighborhood")),
        postal_code=_optional_str(_pick(record, "postal_code")),
    )


def parse_deliveries(records: Iterable[dict[str, Any]]) -> list[Delivery]:
    deliveries = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning(f"Skipping non-object delivery record {record!r}")
            continue
        try:
            deliveries.append(parse_delivery(record))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Skipping delivery record: {exc}")
    return deliveries


async def fetch_assignments(
    unit_id: str,
    day: date | None = None,
    *,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Delivery]:
    """Fetch the deliveries assigned to a vehicle for a day (today by default)."""
    url = base_url or settings.assignments_api_url
    if not url:
        raise AssignmentsUnavailable("Assignment service URL is not configured.")

    params = {"unit_id": unit_id, "date": (day or date.today()).isoformat()}
    try:
        async with httpx.AsyncClient(timeout=settings.assignments_timeout_seconds, transport=transport) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Failed to fetch assignments for unit {unit_id}: {exc}")
        raise AssignmentsUnavailable(f"Could not load assignments for unit '{unit_id}'.") from exc

    records = payload.get("deliveries", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise AssignmentsUnavailable(f"Unexpected assignment payload for unit '{unit_id}'.")

    deliveries = parse_deliveries(records)
    logger.info(f"Loaded {len(deliveries)} deliveries for unit {unit_id} on {params['date']}")
    return deliveries
