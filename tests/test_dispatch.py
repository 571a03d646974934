"""Tests for the operation registry and string-argument entry point."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from herbtrace.auth import Identity
from herbtrace.dispatch import OPERATIONS, Engine, get_operation, invoke, list_operations, operation
from herbtrace.errors import AuthorizationError, NotFoundError, ValidationError
from herbtrace.harvest import quota_key
from herbtrace.ledger import WorldState

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)

EXPECTED = {
    # zones
    "addZone", "setZoneActive", "initZones", "validatePoint", "getZone", "getZonesForHerb", "getAllZones",
    # harvest
    "validateSeason", "validateQuota", "commitQuota", "setQuotaLimits", "getQuotaStatus",
    "getFarmerHistory", "validateZoneLimits",
    # quality
    "submitTest", "verifyAuthenticity", "requireAuthentic", "registerLab", "updateStandards", "initQuality",
    "getTest", "getBatchTests", "getBatchTestHistory", "getStandards", "getLab",
    # provenance
    "createRecord", "appendProcessingStep", "appendTestResult", "finalizePackaging",
    "updateDistributionStatus", "getRecord", "getByTraceCode", "listByFarmer", "listByStatus", "getStats",
    # workflow
    "submitHarvest", "submitBatchTest",
}  # fmt: skip


def test_registry_lists_every_operation() -> None:
    assert set(list_operations()) == EXPECTED
    assert list_operations() == sorted(EXPECTED)
    assert get_operation("getRecord").read_only is True
    assert get_operation("submitHarvest").read_only is False
    assert get_operation("validateZoneLimits").params == ["zone_id", "quantity_kg", "harvest_date", "farmer_id"]


def test_duplicate_registration_is_refused() -> None:
    with pytest.raises(ValueError):
        operation("getRecord")(lambda engine, tx: None)
    assert OPERATIONS["getRecord"].name == "getRecord"


def test_unknown_operation(engine: Engine, regulator: Identity) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        engine.invoke(regulator, "dropTables")
    assert exc_info.value.kind == "Operation"


@pytest.mark.parametrize("args", [(), ("ZONE001", "extra")])
def test_wrong_argument_count(engine: Engine, regulator: Identity, args: tuple[str, ...]) -> None:
    with pytest.raises(ValidationError) as exc_info:
        engine.invoke(regulator, "getZone", *args)
    assert exc_info.value.path == "args"
    assert "(zone_id)" in exc_info.value.message


def test_optional_trailing_arguments(seeded: Engine, farmer: Identity, regulator: Identity) -> None:
    no_gps = seeded.invoke(farmer, "validateSeason", "Ashwagandha", "2024-03-15T08:00:00Z", timestamp=NOW)
    south = seeded.invoke(
        farmer,
        "validateSeason",
        "Tulsi",
        "2024-04-15T08:00:00Z",
        json.dumps({"latitude": -12.5, "longitude": 130.8}),
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    assert no_gps["isValid"] is True
    assert south["season"] == "Autumn" and south["isValid"] is True

    default_standards = seeded.invoke(regulator, "getStandards")
    assert default_standards["appliedStandard"] == "default"


def test_json_arguments_are_decoded(seeded: Engine, farmer: Identity) -> None:
    result = seeded.invoke(
        farmer, "validatePoint", "Ashwagandha", json.dumps({"latitude": 10.20, "longitude": 76.70}), timestamp=NOW
    )
    assert result["isValid"] is True
    assert json.loads(json.dumps(result)) == result


@pytest.mark.parametrize(
    "function, args, path",
    [
        ("addZone", ("{not json",), "zone"),
        ("validatePoint", ("Ashwagandha", "[1, 2"), "gpsCoordinates"),
        ("setZoneActive", ("ZONE001", "maybe"), "active"),
        ("setZoneActive", ("ZONE001", "1"), "active"),
    ],
)
def test_malformed_arguments(seeded: Engine, regulator: Identity, function: str, args: tuple[str, ...], path: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        seeded.invoke(regulator, function, *args, timestamp=NOW)
    assert exc_info.value.path == path


def test_mutation_commits_once(seeded: Engine, regulator: Identity) -> None:
    height = seeded.state.height
    seeded.invoke(regulator, "setZoneActive", "ZONE002", "false", timestamp=NOW)
    assert seeded.state.height == height + 1
    zone = seeded.invoke(regulator, "getZone", "ZONE002")
    assert zone["isActive"] is False


def test_queries_never_persist(seeded: Engine, farmer: Identity) -> None:
    height = seeded.state.height
    result = seeded.invoke(farmer, "validateQuota", "Ashwagandha", "100", "FARM-01", "2024-03-15T08:00:00Z", timestamp=NOW)
    assert result["isValid"] is True
    assert seeded.state.height == height
    assert seeded.state.get(quota_key(2024)) is None

    with pytest.raises(NotFoundError):
        seeded.invoke(farmer, "getQuotaStatus", "2024")


def test_string_quantities_are_parsed(seeded: Engine, farmer: Identity, regulator: Identity) -> None:
    seeded.invoke(farmer, "commitQuota", "Tulsi", "250.5", "FARM-01", "2024-03-15T08:00:00Z", timestamp=NOW)
    status = seeded.invoke(regulator, "getQuotaStatus", "2024")
    assert status["herbQuotas"]["Tulsi"]["used"] == 250.5

    with pytest.raises(ValidationError):
        seeded.invoke(farmer, "commitQuota", "Tulsi", "lots", "FARM-01", "2024-03-15T08:00:00Z", timestamp=NOW)


def test_failed_mutation_leaves_state_untouched(seeded: Engine, farmer: Identity) -> None:
    height = seeded.state.height
    with pytest.raises(AuthorizationError):
        seeded.invoke(farmer, "setZoneActive", "ZONE001", "false", timestamp=NOW)
    assert seeded.state.height == height


def test_module_level_invoke(state: WorldState, regulator: Identity) -> None:
    added = invoke(state, regulator, "initZones", timestamp=NOW)
    assert added["added"] == ["ZONE001", "ZONE002", "ZONE003"]
    zones = invoke(state, regulator, "getAllZones")
    assert [z["zoneId"] for z in zones] == ["ZONE001", "ZONE002", "ZONE003"]
