"""Tests for the cultivation zone registry and GPS validation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from herbtrace.auth import Identity
from herbtrace.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from herbtrace.ledger import Transaction
from herbtrace.zones import REFERENCE_ZONES, CultivationZone, ZoneValidator

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)


def _circle(zone_id: str = "ZONE-T1", **overrides: Any) -> dict[str, Any]:
    zone: dict[str, Any] = {
        "zoneId": zone_id,
        "zoneName": "Test circle",
        "herbTypes": ["Tulsi"],
        "centerPoint": {"latitude": 20.0, "longitude": 75.0},
        "radius": 1000,
    }
    zone.update(overrides)
    return zone


@pytest.fixture
def zones(begin: Callable[..., Transaction], regulator: Identity) -> ZoneValidator:
    validator = ZoneValidator()
    with begin(regulator) as tx:
        validator.init_zones(tx)
    return validator


def test_reference_zones_are_seeded_once(zones: ZoneValidator, begin: Callable[..., Transaction], regulator: Identity) -> None:
    with begin(regulator) as tx:
        assert [z.zone_id for z in zones.all_zones(tx)] == ["ZONE001", "ZONE002", "ZONE003"]
        again = zones.init_zones(tx)
    assert again["added"] == []
    assert tx.record is None


def test_scenario_point_is_inside_kerala_zone(zones: ZoneValidator, begin: Callable[..., Transaction], farmer: Identity) -> None:
    with begin(farmer) as tx:
        result = zones.validate_point(tx, "Ashwagandha", {"latitude": 10.20, "longitude": 76.70})

    assert result["isValid"] is True
    assert [z["zoneId"] for z in result["validZones"]] == ["ZONE001"]
    assert 7500 < result["validZones"][0]["distance"] < 7750
    assert result["coordinates"] == {"latitude": 10.20, "longitude": 76.70}


def test_scenario_point_outside_every_zone(zones: ZoneValidator, begin: Callable[..., Transaction], farmer: Identity) -> None:
    with begin(farmer) as tx:
        result = zones.validate_point(tx, "Ashwagandha", {"latitude": 9.0, "longitude": 76.0})
    assert result["isValid"] is False
    assert result["validZones"] == []
    assert "outside all approved zones" in result["message"]


def test_herb_without_zones(zones: ZoneValidator, begin: Callable[..., Transaction], farmer: Identity) -> None:
    with begin(farmer) as tx:
        result = zones.validate_point(tx, "Saffron", {"latitude": 10.20, "longitude": 76.70})
    assert result["isValid"] is False
    assert "No active cultivation zones" in result["message"]


def test_polygon_zone_uses_boundaries(zones: ZoneValidator, begin: Callable[..., Transaction], farmer: Identity) -> None:
    with begin(farmer) as tx:
        inside = zones.validate_point(tx, "Tulsi", {"latitude": 18.5518, "longitude": 73.8567})
        outside = zones.validate_point(tx, "Tulsi", {"latitude": 18.70, "longitude": 73.85})
        vertex = zones.validate_point(tx, "Tulsi", {"latitude": 18.5204, "longitude": 73.8567})

    assert [z["zoneId"] for z in inside["validZones"]] == ["ZONE003"]
    assert inside["validZones"][0]["distance"] == 0
    assert outside["isValid"] is False
    assert vertex["isValid"] is True


def test_add_zone_requires_regulator(zones: ZoneValidator, begin: Callable[..., Transaction], farmer: Identity) -> None:
    with pytest.raises(AuthorizationError) as exc_info:
        with begin(farmer) as tx:
            zones.add_zone(tx, _circle())
    assert exc_info.value.required == ("regulator",)
    assert exc_info.value.actual == "farmer"


def test_add_zone_and_duplicate(zones: ZoneValidator, begin: Callable[..., Transaction], regulator: Identity) -> None:
    with begin(regulator) as tx:
        result = zones.add_zone(tx, _circle())
    assert result["zoneId"] == "ZONE-T1"

    with begin(regulator) as tx:
        stored = zones.get_zone(tx, "ZONE-T1")
        assert stored.created_at == NOW.isoformat()
        with pytest.raises(ConflictError):
            zones.add_zone(tx, _circle(zoneName="Other name"))


@pytest.mark.parametrize(
    "overrides, path",
    [
        ({"boundaries": [{"latitude": 0, "longitude": 0}] * 3}, "zone"),  # radius and boundaries
        ({"radius": None}, "zone"),  # neither
        ({"centerPoint": None}, "zone.centerPoint"),
        ({"radius": -5}, "zone.radius"),
        ({"herbTypes": []}, "zone.herbTypes"),
        ({"altitude": {"min": 900, "max": 100}}, "zone.altitude"),
        ({"shape": "circle"}, "zone"),
    ],
)
def test_zone_schema_violations(overrides: dict[str, Any], path: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        CultivationZone.from_dict(_circle(**overrides))
    assert exc_info.value.path == path


def test_polygon_needs_three_points() -> None:
    data = _circle(radius=None, boundaries=[{"latitude": 0, "longitude": 0}, {"latitude": 1, "longitude": 1}])
    with pytest.raises(ValidationError) as exc_info:
        CultivationZone.from_dict(data)
    assert exc_info.value.path == "zone.boundaries"


def test_deactivated_zone_is_skipped(zones: ZoneValidator, begin: Callable[..., Transaction], regulator: Identity) -> None:
    point = {"latitude": 10.20, "longitude": 76.70}
    with begin(regulator) as tx:
        zones.set_zone_active(tx, "ZONE001", False)
    with begin(regulator) as tx:
        assert zones.validate_point(tx, "Ashwagandha", point)["isValid"] is False
        assert zones.get_zone(tx, "ZONE001").last_updated == NOW.isoformat()
        assert "ZONE001" not in [z.zone_id for z in zones.zones_for_herb(tx, "Ashwagandha")]
        assert "ZONE001" in [z.zone_id for z in zones.all_zones(tx)]
        zones.set_zone_active(tx, "ZONE001", True)
    with begin(regulator) as tx:
        assert zones.validate_point(tx, "Ashwagandha", point)["isValid"] is True


def test_unknown_zone(zones: ZoneValidator, begin: Callable[..., Transaction], regulator: Identity) -> None:
    with begin(regulator) as tx:
        with pytest.raises(NotFoundError):
            zones.get_zone(tx, "ZONE999")
        with pytest.raises(NotFoundError):
            zones.set_zone_active(tx, "ZONE999", True)


def test_zone_round_trips_through_storage() -> None:
    for raw in REFERENCE_ZONES:
        zone = CultivationZone.from_dict(raw)
        assert CultivationZone.from_dict(zone.to_dict()) == zone
