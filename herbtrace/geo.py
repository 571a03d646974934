"""
Geodesy helpers for zone containment.

Boundary policies:
- circle: a point at exactly ``radius`` metres from the center is inside
- polygon: even-odd ray casting over (latitude, longitude) vertices; points on
  an edge or a vertex are inside
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

from .schema import check_keys, opt_number, opt_str, req_number, require_mapping

EARTH_RADIUS_M = 6371e3

_EDGE_EPSILON = 1e-12


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    accuracy: float | None = None  # metres
    timestamp: str | None = None

    FIELDS = ("latitude", "longitude", "accuracy", "timestamp")

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> GeoPoint:
        data = require_mapping(data, path)
        check_keys(data, cls.FIELDS, path)
        return cls(
            latitude=req_number(data, "latitude", path, ge=-90, le=90),
            longitude=req_number(data, "longitude", path, ge=-180, le=180),
            accuracy=opt_number(data, "accuracy", path, ge=0),
            timestamp=opt_str(data, "timestamp", path),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"latitude": self.latitude, "longitude": self.longitude}
        if self.accuracy is not None:
            result["accuracy"] = self.accuracy
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        return result

    @property
    def hemisphere(self) -> str:
        return "Southern" if self.latitude < 0 else "Northern"


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in metres."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def point_in_circle(point: GeoPoint, center: GeoPoint, radius_m: float) -> tuple[bool, float]:
    """(contained, distance_m). Inclusive at the boundary."""
    distance = haversine_distance(point, center)
    return distance <= radius_m, distance


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > _EDGE_EPSILON:
        return False
    return min(ax, bx) - _EDGE_EPSILON <= px <= max(ax, bx) + _EDGE_EPSILON and (
        min(ay, by) - _EDGE_EPSILON <= py <= max(ay, by) + _EDGE_EPSILON
    )


def point_in_polygon(point: GeoPoint, vertices: Sequence[GeoPoint]) -> bool:
    """
    Even-odd containment with x = latitude, y = longitude.

    Points lying on an edge or vertex count as inside.
    """
    if len(vertices) < 3:
        raise ValueError("polygon needs at least 3 vertices")

    x, y = point.latitude, point.longitude
    n = len(vertices)

    for i in range(n):
        a, b = vertices[i], vertices[(i + 1) % n]
        if _on_segment(x, y, a.latitude, a.longitude, b.latitude, b.longitude):
            return True

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = vertices[i].latitude, vertices[i].longitude
        xj, yj = vertices[j].latitude, vertices[j].longitude
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside
