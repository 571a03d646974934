"""End-to-end harvest and test submissions through the engine."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from herbtrace.auth import Identity
from herbtrace.dispatch import Engine
from herbtrace.errors import NotFoundError, RuleViolation
from herbtrace.harvest import farmer_key, quota_key, zone_log_key
from herbtrace.provenance.machine import batch_key

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)


def _harvest(engine: Engine, identity: Identity, event: dict[str, Any]) -> dict[str, Any]:
    return engine.invoke(identity, "submitHarvest", json.dumps(event), timestamp=NOW)


def test_accepted_harvest_writes_batch_quota_and_zone_log(
    seeded: Engine, farmer: Identity, make_event: Callable[..., dict[str, Any]]
) -> None:
    result = _harvest(seeded, farmer, make_event())

    assert result["batchId"] == "BATCH-001"
    assert result["status"] == "Collected"
    assert result["zones"] == ["ZONE001"]
    assert result["warnings"] == []
    assert result["quota"] == {"herbType": "Ashwagandha", "used": 100, "remaining": 19900, "utilization": 0.5}

    state = seeded.state
    assert state.height == 3
    record = seeded.invoke(farmer, "getRecord", "BATCH-001", timestamp=NOW)
    assert record["collectionEvent"]["gpsCoordinates"]["latitude"] == 10.20
    assert json.loads(state.get(zone_log_key("ZONE001"))) == [
        {
            "batchId": "BATCH-001",
            "farmerId": "FARM-01",
            "herbType": "Ashwagandha",
            "quantityKg": 100,
            "harvestDate": "2024-03-15T08:00:00Z",
        }
    ]
    assert json.loads(state.get(farmer_key("FARM-01", 2024)))["totalHarvest"] == 100
    assert json.loads(state.get(batch_key("BATCH-001")))["version"] == 1


def test_rejection_collects_every_reason_and_writes_nothing(
    seeded: Engine, farmer: Identity, make_event: Callable[..., dict[str, Any]]
) -> None:
    event = make_event(
        gpsCoordinates={"latitude": 9.0, "longitude": 76.0},
        collectionDate="2023-07-15T08:00:00Z",
        harvestSeason="Summer",
    )
    with pytest.raises(RuleViolation) as exc_info:
        _harvest(seeded, farmer, event)

    reasons = exc_info.value.reasons
    assert len(reasons) == 2
    assert "outside all approved zones" in reasons[0]
    assert "Invalid harvest season Summer" in reasons[1]
    assert exc_info.value.shortfall is None

    state = seeded.state
    assert state.height == 2
    assert state.get(batch_key("BATCH-001")) is None
    assert state.get(quota_key(2023)) is None


def test_rejection_reports_quota_shortfall(
    seeded: Engine, farmer: Identity, make_event: Callable[..., dict[str, Any]]
) -> None:
    with pytest.raises(RuleViolation) as exc_info:
        _harvest(seeded, farmer, make_event(quantityKg=12000))

    assert exc_info.value.shortfall == 2000
    assert any(r.startswith("Farmer quota exceeded") for r in exc_info.value.reasons)
    assert any("annual harvest limit exceeded" in r for r in exc_info.value.reasons)
    assert seeded.state.height == 2


def test_regeneration_period_is_per_farmer(
    seeded: Engine, farmer: Identity, make_event: Callable[..., dict[str, Any]]
) -> None:
    _harvest(seeded, farmer, make_event())

    with pytest.raises(RuleViolation) as exc_info:
        _harvest(seeded, farmer, make_event(batchId="BATCH-002", collectionDate="2024-03-20T08:00:00Z"))
    assert exc_info.value.reasons == [
        "Zone ZONE001 needs 90 days to regenerate; next harvest allowed from 2024-06-13"
    ]

    other = Identity(member_id="FARM-02", capability="farmer")
    result = _harvest(
        seeded,
        other,
        make_event(batchId="BATCH-003", farmerId="FARM-02", collectionDate="2024-03-20T08:00:00Z"),
    )
    assert result["quota"]["used"] == 200


def test_suboptimal_month_is_accepted_with_advisory(
    seeded: Engine, farmer: Identity, make_event: Callable[..., dict[str, Any]]
) -> None:
    # May is Spring (allowed) but outside Ashwagandha's Nov-Apr window
    result = _harvest(seeded, farmer, make_event(collectionDate="2023-05-10T08:00:00Z"))
    assert result["warnings"] == [
        "Ashwagandha should be harvested in winter/spring (Nov-Apr) for optimal potency"
    ]
    assert result["quota"]["used"] == 100


def test_batch_test_uses_batch_herb_standard(
    seeded: Engine,
    farmer: Identity,
    lab: Identity,
    make_event: Callable[..., dict[str, Any]],
    make_test: Callable[..., dict[str, Any]],
) -> None:
    _harvest(seeded, farmer, make_event())

    payload = make_test(moistureContent=13)
    del payload["herbType"]
    result = seeded.invoke(lab, "submitBatchTest", json.dumps(payload), timestamp=NOW)

    # 13% passes the default 15% ceiling but not Ashwagandha's 12%
    assert result["overallResult"] == "Fail"
    assert result["status"] == "Tested-Fail"
    stored = seeded.invoke(lab, "getTest", "TEST-001", timestamp=NOW)
    assert stored["herbType"] == "Ashwagandha"

    record = seeded.invoke(lab, "getRecord", "BATCH-001", timestamp=NOW)
    assert record["qualityTests"][0]["dataHash"] == stored["dataHash"]


def test_batch_test_pass_then_package(
    seeded: Engine,
    farmer: Identity,
    lab: Identity,
    distributor: Identity,
    make_event: Callable[..., dict[str, Any]],
    make_test: Callable[..., dict[str, Any]],
) -> None:
    _harvest(seeded, farmer, make_event())
    result = seeded.invoke(lab, "submitBatchTest", json.dumps(make_test()), timestamp=NOW)
    assert result["status"] == "Tested-Pass"

    packaged = seeded.invoke(distributor, "finalizePackaging", "BATCH-001", timestamp=NOW)
    traced = seeded.invoke(distributor, "getByTraceCode", packaged["qrCode"]["qrCodeId"], timestamp=NOW)
    assert traced["currentStatus"] == "Packaged"
    assert traced["compliance"]["fssaiApproved"] is True


def test_batch_test_for_unknown_batch_writes_nothing(
    seeded: Engine, lab: Identity, make_test: Callable[..., dict[str, Any]]
) -> None:
    payload = make_test(batchId="BATCH-404")
    with pytest.raises(NotFoundError):
        seeded.invoke(lab, "submitBatchTest", json.dumps(payload), timestamp=NOW)
    assert seeded.state.height == 2
