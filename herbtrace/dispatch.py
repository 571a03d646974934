"""
Operation registry and the ``functionName(stringArgs...)`` entry point.

Every operation is registered by its camelCase name and receives the engine,
an open transaction, and the raw string arguments. JSON arguments are decoded
by the operation itself. ``invoke`` runs one operation in one transaction and
commits it (read-only operations are discarded instead). Typed
``HerbTraceError`` exceptions propagate unchanged.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from .config import Settings
from .errors import NotFoundError, ValidationError
from .harvest import HarvestValidator
from .provenance import ProvenanceStateMachine
from .quality import QualityValidator
from .schema import parse_json_arg
from .workflow import SubmissionWorkflow
from .zones import ZoneValidator

if TYPE_CHECKING:
    from .auth import Identity
    from .ledger.store import WorldState
    from .ledger.transaction import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    name: str
    func: Callable[..., Any]
    read_only: bool = False

    @property
    def params(self) -> list[str]:
        """Argument names after (engine, tx), for usage messages."""
        return list(inspect.signature(self.func).parameters)[2:]


# Global registry: operation name -> Operation
OPERATIONS: dict[str, Operation] = {}


def operation(name: str, *, read_only: bool = False) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if name in OPERATIONS:
            raise ValueError(f"Operation already registered: {name}")
        OPERATIONS[name] = Operation(name=name, func=func, read_only=read_only)
        return func

    return decorator


def get_operation(name: str) -> Operation:
    op = OPERATIONS.get(name)
    if op is None:
        raise NotFoundError("Operation", name)
    return op


def list_operations() -> list[str]:
    return sorted(OPERATIONS)


class Engine:
    """World state plus the validators and state machine that operate on it."""

    def __init__(self, state: WorldState, settings: Settings | None = None):
        self.state = state
        self.settings = settings or Settings()
        self.zones = ZoneValidator()
        self.harvest = HarvestValidator(self.settings)
        self.quality = QualityValidator(self.settings)
        self.provenance = ProvenanceStateMachine(self.settings)
        self.workflow = SubmissionWorkflow(self.zones, self.harvest, self.quality, self.provenance)

    def invoke(
        self,
        identity: Identity,
        function: str,
        *args: str,
        timestamp: datetime | None = None,
    ) -> Any:
        op = get_operation(function)
        try:
            inspect.signature(op.func).bind(self, None, *args)
        except TypeError:
            raise ValidationError(
                f"{function} expects arguments ({', '.join(op.params)}), got {len(args)}",
                path="args",
            ) from None

        with self.state.begin(identity, function=function, timestamp=timestamp) as tx:
            result = op.func(self, tx, *args)
            if op.read_only:
                # queries never persist, including lazily staged defaults
                tx.discard()
        if tx.record is not None:
            logger.info("%s by %s committed at version %d", function, identity.actor, tx.record.version)
        return result


def invoke(
    state: WorldState,
    identity: Identity,
    function: str,
    *args: str,
    settings: Settings | None = None,
    timestamp: datetime | None = None,
) -> Any:
    return Engine(state, settings).invoke(identity, function, *args, timestamp=timestamp)


def _bool_arg(text: str, name: str) -> bool:
    value = parse_json_arg(text, name)
    if not isinstance(value, bool):
        raise ValidationError("must be true or false", path=name)
    return value


# -----------------------------------------------------------------------------
# Zones
# -----------------------------------------------------------------------------


@operation("addZone")
def _add_zone(engine: Engine, tx: Transaction, zone: str) -> Any:
    return engine.zones.add_zone(tx, parse_json_arg(zone, "zone"))


@operation("setZoneActive")
def _set_zone_active(engine: Engine, tx: Transaction, zone_id: str, active: str) -> Any:
    return engine.zones.set_zone_active(tx, zone_id, _bool_arg(active, "active"))


@operation("initZones")
def _init_zones(engine: Engine, tx: Transaction) -> Any:
    return engine.zones.init_zones(tx)


@operation("validatePoint", read_only=True)
def _validate_point(engine: Engine, tx: Transaction, herb_type: str, point: str) -> Any:
    return engine.zones.validate_point(tx, herb_type, parse_json_arg(point, "gpsCoordinates"))


@operation("getZone", read_only=True)
def _get_zone(engine: Engine, tx: Transaction, zone_id: str) -> Any:
    return engine.zones.get_zone(tx, zone_id).to_dict()


@operation("getZonesForHerb", read_only=True)
def _get_zones_for_herb(engine: Engine, tx: Transaction, herb_type: str) -> Any:
    return [z.to_dict() for z in engine.zones.zones_for_herb(tx, herb_type)]


@operation("getAllZones", read_only=True)
def _get_all_zones(engine: Engine, tx: Transaction) -> Any:
    return [z.to_dict() for z in engine.zones.all_zones(tx)]


# -----------------------------------------------------------------------------
# Harvest rules and quota
# -----------------------------------------------------------------------------


@operation("validateSeason", read_only=True)
def _validate_season(engine: Engine, tx: Transaction, herb_type: str, harvest_date: str, gps: str = "") -> Any:
    point = parse_json_arg(gps, "gpsCoordinates") if gps else None
    return engine.harvest.validate_season(tx, herb_type, harvest_date, point)


@operation("validateQuota", read_only=True)
def _validate_quota(
    engine: Engine, tx: Transaction, herb_type: str, quantity_kg: str, farmer_id: str, harvest_date: str
) -> Any:
    return engine.harvest.validate_quota(tx, herb_type, quantity_kg, farmer_id, harvest_date)


@operation("commitQuota")
def _commit_quota(
    engine: Engine, tx: Transaction, herb_type: str, quantity_kg: str, farmer_id: str, harvest_date: str
) -> Any:
    return engine.harvest.commit_quota(tx, herb_type, quantity_kg, farmer_id, harvest_date)


@operation("setQuotaLimits")
def _set_quota_limits(engine: Engine, tx: Transaction, year: str, limits: str) -> Any:
    return engine.harvest.set_quota_limits(tx, year, parse_json_arg(limits, "quotaLimits"))


@operation("getQuotaStatus", read_only=True)
def _get_quota_status(engine: Engine, tx: Transaction, year: str) -> Any:
    return engine.harvest.get_quota_status(tx, year)


@operation("getFarmerHistory", read_only=True)
def _get_farmer_history(engine: Engine, tx: Transaction, farmer_id: str, year: str) -> Any:
    return engine.harvest.get_farmer_history(tx, farmer_id, year)


@operation("validateZoneLimits", read_only=True)
def _validate_zone_limits(
    engine: Engine, tx: Transaction, zone_id: str, quantity_kg: str, harvest_date: str, farmer_id: str = ""
) -> Any:
    zone = engine.zones.get_zone(tx, zone_id)
    return engine.harvest.validate_zone_limits(
        zone,
        quantity_kg,
        engine.harvest.zone_harvests(tx, zone_id),
        harvest_date,
        farmer_id=farmer_id or None,
    )


# -----------------------------------------------------------------------------
# Quality
# -----------------------------------------------------------------------------


@operation("submitTest")
def _submit_test(engine: Engine, tx: Transaction, payload: str) -> Any:
    return engine.quality.submit_test(tx, parse_json_arg(payload, "test"))


@operation("verifyAuthenticity", read_only=True)
def _verify_authenticity(engine: Engine, tx: Transaction, test_id: str) -> Any:
    return engine.quality.verify_authenticity(tx, test_id)


@operation("requireAuthentic", read_only=True)
def _require_authentic(engine: Engine, tx: Transaction, test_id: str) -> Any:
    return engine.quality.require_authentic(tx, test_id)


@operation("registerLab")
def _register_lab(engine: Engine, tx: Transaction, lab: str) -> Any:
    return engine.quality.register_lab(tx, parse_json_arg(lab, "lab"))


@operation("updateStandards")
def _update_standards(engine: Engine, tx: Transaction, herb_type: str, standards: str) -> Any:
    return engine.quality.update_standards(tx, herb_type, parse_json_arg(standards, "standards"))


@operation("initQuality")
def _init_quality(engine: Engine, tx: Transaction) -> Any:
    return engine.quality.init_quality(tx)


@operation("getTest", read_only=True)
def _get_test(engine: Engine, tx: Transaction, test_id: str) -> Any:
    return engine.quality.get_test(tx, test_id)


@operation("getBatchTests", read_only=True)
def _get_batch_tests(engine: Engine, tx: Transaction, batch_id: str) -> Any:
    return engine.quality.get_batch_tests(tx, batch_id)


@operation("getBatchTestHistory", read_only=True)
def _get_batch_test_history(engine: Engine, tx: Transaction, batch_id: str) -> Any:
    return engine.quality.get_batch_test_history(tx, batch_id)


@operation("getStandards", read_only=True)
def _get_standards(engine: Engine, tx: Transaction, herb_type: str = "default") -> Any:
    return engine.quality.get_standards(tx, herb_type)


@operation("getLab", read_only=True)
def _get_lab(engine: Engine, tx: Transaction, lab_id: str) -> Any:
    return engine.quality.get_lab(tx, lab_id).to_dict()


# -----------------------------------------------------------------------------
# Provenance
# -----------------------------------------------------------------------------


@operation("createRecord")
def _create_record(engine: Engine, tx: Transaction, event: str) -> Any:
    return engine.provenance.create_record(tx, parse_json_arg(event, "collectionEvent"))


@operation("appendProcessingStep")
def _append_processing_step(engine: Engine, tx: Transaction, batch_id: str, step: str) -> Any:
    return engine.provenance.append_processing_step(tx, batch_id, parse_json_arg(step, "processingStep"))


@operation("appendTestResult")
def _append_test_result(engine: Engine, tx: Transaction, batch_id: str, test: str) -> Any:
    return engine.provenance.append_test_result(tx, batch_id, parse_json_arg(test, "test"))


@operation("finalizePackaging")
def _finalize_packaging(engine: Engine, tx: Transaction, batch_id: str, distribution: str = "{}") -> Any:
    return engine.provenance.finalize_packaging(tx, batch_id, parse_json_arg(distribution, "distributionInfo"))


@operation("updateDistributionStatus")
def _update_distribution_status(engine: Engine, tx: Transaction, batch_id: str, status: str) -> Any:
    return engine.provenance.update_distribution_status(tx, batch_id, status)


@operation("getRecord", read_only=True)
def _get_record(engine: Engine, tx: Transaction, batch_id: str) -> Any:
    return engine.provenance.get_record(tx, batch_id)


@operation("getByTraceCode", read_only=True)
def _get_by_trace_code(engine: Engine, tx: Transaction, code: str) -> Any:
    return engine.provenance.get_by_trace_code(tx, code)


@operation("listByFarmer", read_only=True)
def _list_by_farmer(engine: Engine, tx: Transaction, farmer_id: str) -> Any:
    return engine.provenance.list_by_farmer(tx, farmer_id)


@operation("listByStatus", read_only=True)
def _list_by_status(engine: Engine, tx: Transaction, status: str) -> Any:
    return engine.provenance.list_by_status(tx, status)


@operation("getStats", read_only=True)
def _get_stats(engine: Engine, tx: Transaction) -> Any:
    return engine.provenance.get_stats(tx)


# -----------------------------------------------------------------------------
# Workflow
# -----------------------------------------------------------------------------


@operation("submitHarvest")
def _submit_harvest(engine: Engine, tx: Transaction, event: str) -> Any:
    return engine.workflow.submit_harvest(tx, parse_json_arg(event, "collectionEvent"))


@operation("submitBatchTest")
def _submit_batch_test(engine: Engine, tx: Transaction, payload: str) -> Any:
    return engine.workflow.submit_test(tx, parse_json_arg(payload, "test"))
