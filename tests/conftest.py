"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from herbtrace.auth import DISTRIBUTOR, FARMER, LAB, PROCESSOR, REGULATOR, Identity
from herbtrace.config import Settings
from herbtrace.dispatch import Engine
from herbtrace.ledger import Transaction, WorldState

# Frozen clock: every transaction in the suite runs "now" = 1 April 2024.
NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)

# (10.20, 76.70) lies inside ZONE001 (Kerala, r = 50 km) at roughly 7.6 km.
KERALA_POINT = {"latitude": 10.20, "longitude": 76.70, "accuracy": 5}


@pytest.fixture
def state() -> WorldState:
    """In-memory world state."""
    return WorldState()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def regulator() -> Identity:
    return Identity(member_id="REG-01", capability=REGULATOR)


@pytest.fixture
def farmer() -> Identity:
    return Identity(member_id="FARM-01", capability=FARMER)


@pytest.fixture
def lab() -> Identity:
    return Identity(member_id="LAB001", capability=LAB)


@pytest.fixture
def processor() -> Identity:
    return Identity(member_id="PROC-01", capability=PROCESSOR)


@pytest.fixture
def distributor() -> Identity:
    return Identity(member_id="DIST-01", capability=DISTRIBUTOR)


@pytest.fixture
def engine(state: WorldState, settings: Settings) -> Engine:
    return Engine(state, settings)


@pytest.fixture
def seeded(engine: Engine, regulator: Identity) -> Engine:
    """Engine with reference zones, standards and labs installed."""
    engine.invoke(regulator, "initZones", timestamp=NOW)
    engine.invoke(regulator, "initQuality", timestamp=NOW)
    return engine


@pytest.fixture
def begin(state: WorldState) -> Callable[..., Transaction]:
    """Open a transaction on the shared state at the frozen clock."""

    def _begin(identity: Identity, *, at: datetime = NOW, function: str = "test") -> Transaction:
        return state.begin(identity, function=function, timestamp=at)

    return _begin


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Collection event for an Ashwagandha harvest inside ZONE001."""

    def _make(**overrides: Any) -> dict[str, Any]:
        event: dict[str, Any] = {
            "batchId": "BATCH-001",
            "farmerId": "FARM-01",
            "farmerName": "Ravi Kumar",
            "herbType": "Ashwagandha",
            "quantityKg": 100,
            "collectionDate": "2024-03-15T08:00:00Z",
            "gpsCoordinates": copy.deepcopy(KERALA_POINT),
            "harvestSeason": "Spring",
            "collectionMethod": "Hand-picked",
            "certificationType": "Organic",
            "sustainabilityScore": 80,
        }
        event.update(overrides)
        return event

    return _make


@pytest.fixture
def make_step() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        step: dict[str, Any] = {
            "stepId": "STEP-001",
            "batchId": "BATCH-001",
            "facilityId": "FAC-01",
            "facilityName": "Kochi Drying Unit",
            "processType": "Drying",
            "inputQuantityKg": 100,
            "outputQuantityKg": 80,
            "processStartTime": "2024-03-18T06:00:00Z",
            "processEndTime": "2024-03-18T10:00:00Z",
            "temperature": 50,
            "duration": 240,
            "operatorId": "OP-7",
        }
        step.update(overrides)
        return step

    return _make


@pytest.fixture
def make_test() -> Callable[..., dict[str, Any]]:
    """Quality test payload from LAB001 that passes the Ashwagandha standard."""

    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "testId": "TEST-001",
            "batchId": "BATCH-001",
            "labId": "LAB001",
            "labName": "Ayurveda Research Institute Lab",
            "labCertification": "NABL-ISO17025",
            "testType": "Physical",
            "testDate": "2024-03-25T10:00:00Z",
            "sampleId": "S-001",
            "sampleQuantity": 50,
            "testerId": "TESTER-1",
            "herbType": "Ashwagandha",
            "moistureContent": 10,
            "ashContent": 5,
            "foreignMatter": 1,
        }
        payload.update(overrides)
        return payload

    return _make
