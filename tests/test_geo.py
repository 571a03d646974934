"""Tests for distance and containment helpers."""

from __future__ import annotations

import pytest

from herbtrace.errors import ValidationError
from herbtrace.geo import GeoPoint, haversine_distance, point_in_circle, point_in_polygon

KERALA_CENTER = GeoPoint(10.1632, 76.6413)

SQUARE = [GeoPoint(0, 0), GeoPoint(0, 1), GeoPoint(1, 1), GeoPoint(1, 0)]


def test_haversine_reference_distance() -> None:
    d = haversine_distance(KERALA_CENTER, GeoPoint(10.20, 76.70))
    assert 7500 < d < 7750
    assert haversine_distance(KERALA_CENTER, KERALA_CENTER) == 0


def test_haversine_is_symmetric() -> None:
    a, b = GeoPoint(18.52, 73.85), GeoPoint(-33.86, 151.21)
    assert haversine_distance(a, b) == pytest.approx(haversine_distance(b, a))


def test_circle_boundary_is_inclusive() -> None:
    point = GeoPoint(10.20, 76.70)
    exact = haversine_distance(KERALA_CENTER, point)

    inside, distance = point_in_circle(point, KERALA_CENTER, exact)
    assert inside
    assert distance == exact

    outside, _ = point_in_circle(point, KERALA_CENTER, exact - 0.001)
    assert not outside


def test_circle_far_point_is_outside() -> None:
    inside, distance = point_in_circle(GeoPoint(9.0, 76.0), KERALA_CENTER, 50_000)
    assert not inside
    assert distance > 50_000


@pytest.mark.parametrize(
    "point, expected",
    [
        (GeoPoint(0.5, 0.5), True),  # interior
        (GeoPoint(1.5, 0.5), False),  # exterior
        (GeoPoint(0.5, -0.1), False),
        (GeoPoint(0.0, 0.5), True),  # on edge
        (GeoPoint(0.5, 1.0), True),  # on edge
        (GeoPoint(1.0, 1.0), True),  # vertex
        (GeoPoint(0.0, 0.0), True),  # vertex
    ],
)
def test_polygon_containment_counts_edges_as_inside(point: GeoPoint, expected: bool) -> None:
    assert point_in_polygon(point, SQUARE) is expected


def test_polygon_concave_notch() -> None:
    # U shape: the notch between the arms is outside
    u_shape = [
        GeoPoint(0, 0),
        GeoPoint(0, 3),
        GeoPoint(3, 3),
        GeoPoint(3, 2),
        GeoPoint(1, 2),
        GeoPoint(1, 1),
        GeoPoint(3, 1),
        GeoPoint(3, 0),
    ]
    assert point_in_polygon(GeoPoint(2, 1.5), u_shape) is False
    assert point_in_polygon(GeoPoint(2, 0.5), u_shape) is True
    assert point_in_polygon(GeoPoint(0.5, 1.5), u_shape) is True


def test_polygon_needs_three_vertices() -> None:
    with pytest.raises(ValueError):
        point_in_polygon(GeoPoint(0, 0), SQUARE[:2])


def test_geopoint_validation() -> None:
    point = GeoPoint.from_dict({"latitude": -12.5, "longitude": 130.8, "accuracy": 3}, "gps")
    assert point.hemisphere == "Southern"
    assert point.to_dict() == {"latitude": -12.5, "longitude": 130.8, "accuracy": 3}

    with pytest.raises(ValidationError) as exc_info:
        GeoPoint.from_dict({"latitude": 91, "longitude": 0}, "gps")
    assert exc_info.value.path == "gps.latitude"

    with pytest.raises(ValidationError):
        GeoPoint.from_dict({"latitude": 0, "longitude": 0, "altitude": 5}, "gps")
