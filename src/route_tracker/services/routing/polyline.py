"""Encoded polyline codec.

Routing services return route geometry in Google's polyline encoding: signed
deltas in fixed point (1e5), zig-zag encoded and packed into 5-bit groups
offset by 63, with 0x20 marking continuation.
"""

from __future__ import annotations

from typing import Iterable

from ...models.domain import Coordinate

PRECISION_FACTOR = 1e5


def _read_value(encoded: str, index: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        b = ord(encoded[index]) - 63
        index += 1
        result |= (b & 0x1f) << shift
        shift += 5
        if b < 0x20:
            break
    value = ~(result >> 1) if (result & 1) else (result >> 1)
    return value, index


def decode_polyline(encoded: str) -> list[Coordinate]:
    """Decode a polyline string to a list of coordinates.

    The input must come from the routing service; a truncated or otherwise
    malformed string raises ``IndexError``.

    Args:
        encoded: Encoded polyline string

    Returns:
        List of coordinates in path order (empty for an empty string)
    """
    coordinates: list[Coordinate] = []
    index = 0
    lat = 0
    lon = 0

    while index < len(encoded):
        dlat, index = _read_value(encoded, index)
        lat += dlat
        dlon, index = _read_value(encoded, index)
        lon += dlon
        coordinates.append(Coordinate(lat / PRECISION_FACTOR, lon / PRECISION_FACTOR))

    return coordinates


def _write_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1f)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(coordinates: Iterable[Coordinate]) -> str:
    """Encode coordinates (rounded to 5 decimal places) as a polyline string."""
    parts = []
    prev_lat = 0
    prev_lon = 0
    for coordinate in coordinates:
        lat = int(round(coordinate.latitude * PRECISION_FACTOR))
        lon = int(round(coordinate.longitude * PRECISION_FACTOR))
        parts.append(_write_value(lat - prev_lat))
        parts.append(_write_value(lon - prev_lon))
        prev_lat, prev_lon = lat, lon
    return "".join(parts)
