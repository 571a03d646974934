"""
Per-batch provenance aggregate and its status machine.

The record at ``BATCH~<batchId>`` is created once from a collection event and
afterwards only grows: processing steps and test results are appended,
packaging attaches distribution info, and distribution transitions move the
status. Every mutation bumps ``version`` by one.

The machine does not re-run the zone, harvest or quality rules; the caller
(see ``herbtrace.workflow``) is responsible for validating first.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Any

from ..auth import DISTRIBUTOR, FARMER, LAB, PROCESSOR, REGULATOR, requires
from ..config import Settings
from ..errors import ConflictError, NotFoundError, RuleViolation, ValidationError
from ..schema import parse_datetime
from .records import CollectionEvent, DistributionInfo, ProcessingStep
from .reports import with_derived
from .states import (
    APPENDABLE,
    DISTRIBUTION_STATUSES,
    TERMINAL,
    BatchStatus,
    status_for_test_result,
)

if TYPE_CHECKING:
    from ..ledger.transaction import Transaction

logger = logging.getLogger(__name__)

BATCH_PREFIX = "BATCH~"
TRACE_PREFIX = "TRACE~"
STATS_KEY = "PROVENANCE~STATS"

DEFAULT_SUSTAINABILITY_BASE = 70


def batch_key(batch_id: str) -> str:
    return f"{BATCH_PREFIX}{batch_id}"


def trace_key(code: str) -> str:
    return f"{TRACE_PREFIX}{code}"


class ProvenanceStateMachine:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(self, tx: Transaction, batch_id: str) -> dict[str, Any]:
        record = tx.get_json(batch_key(batch_id))
        if record is None:
            raise NotFoundError("Batch", batch_id)
        return record

    def _save(self, tx: Transaction, record: dict[str, Any]) -> None:
        record["version"] += 1
        record["lastUpdated"] = tx.timestamp.isoformat()
        tx.put_json(batch_key(record["batchId"]), record)

    def _require_appendable(self, record: dict[str, Any], what: str) -> None:
        status = BatchStatus(record["currentStatus"])
        if status not in APPENDABLE:
            raise RuleViolation(f"Cannot add {what} to batch {record['batchId']} in status {status.value}")

    @staticmethod
    def _transition(record: dict[str, Any], new: BatchStatus) -> None:
        old = record["currentStatus"]
        record["currentStatus"] = new.value
        if old != new.value:
            logger.info("Batch %s: %s -> %s", record["batchId"], old, new.value)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @requires(FARMER, REGULATOR)
    def create_record(self, tx: Transaction, data: Any) -> dict[str, Any]:
        event = data if isinstance(data, CollectionEvent) else CollectionEvent.from_dict(data)
        if tx.get_state(batch_key(event.batch_id)) is not None:
            raise ConflictError("Batch", event.batch_id)

        now = tx.timestamp.isoformat()
        record: dict[str, Any] = {
            "batchId": event.batch_id,
            "currentStatus": BatchStatus.COLLECTED.value,
            "collectionEvent": event.to_dict(),
            "processingSteps": [],
            "qualityTests": [],
            "distributionInfo": None,
            "compliance": {
                "organicCertified": event.certification_type == "Organic",
                "gmpCertified": False,
                "isoCertified": False,
                "ayushCompliant": False,
                "fssaiApproved": False,
            },
            "sustainability": {"sustainabilityScore": event.sustainability_score or 0},
            "createdAt": now,
            "lastUpdated": now,
            "version": 1,
        }
        tx.put_json(batch_key(event.batch_id), record)

        stats = tx.get_json(STATS_KEY) or {"totalBatches": 0}
        stats["totalBatches"] += 1
        stats["lastUpdated"] = now
        tx.put_json(STATS_KEY, stats)

        logger.info("Created batch %s (%gkg %s from %s)", event.batch_id, event.quantity_kg, event.herb_type, event.farmer_id)
        return {
            "success": True,
            "batchId": event.batch_id,
            "status": record["currentStatus"],
            "message": f"Provenance record created for batch {event.batch_id}",
        }

    @requires(PROCESSOR)
    def append_processing_step(self, tx: Transaction, batch_id: str, data: Any) -> dict[str, Any]:
        step = ProcessingStep.from_dict(data)
        if step.batch_id != batch_id:
            raise ValidationError("Batch ID mismatch between parameters and processing data", path="batchId")

        record = self._load(tx, batch_id)
        self._require_appendable(record, "processing step")
        if any(s["stepId"] == step.step_id for s in record["processingSteps"]):
            raise ConflictError("Processing step", step.step_id, scope=f"batch {batch_id}")

        record["processingSteps"].append(step.to_dict())
        self._transition(record, BatchStatus.IN_PROCESSING)
        self._update_sustainability(record, step)
        self._save(tx, record)

        return {
            "success": True,
            "batchId": batch_id,
            "stepId": step.step_id,
            "status": record["currentStatus"],
            "totalSteps": len(record["processingSteps"]),
            "message": f"Processing step {step.step_id} added to batch {batch_id}",
        }

    @staticmethod
    def _update_sustainability(record: dict[str, Any], step: ProcessingStep) -> None:
        metrics = record.setdefault("sustainability", {})
        if step.duration and step.temperature:
            energy = (step.duration / 60) * (step.temperature / 100) * 10  # kWh estimate
            metrics["energyConsumption"] = metrics.get("energyConsumption", 0) + energy
        if metrics.get("energyConsumption"):
            metrics["carbonFootprint"] = metrics["energyConsumption"] * 0.5  # kg CO2 per kWh

        base = record["collectionEvent"].get("sustainabilityScore") or DEFAULT_SUSTAINABILITY_BASE
        metrics["overallScore"] = max(0, base - 2 * len(record["processingSteps"]))

    @requires(LAB)
    def append_test_result(self, tx: Transaction, batch_id: str, test: dict[str, Any]) -> dict[str, Any]:
        """
        Append a stored quality test record.

        ``test`` is the record as persisted by the quality validator, including
        its computed overallResult.
        """
        if not isinstance(test, dict):
            raise ValidationError("expected an object", path="test")
        for field_name in ("testId", "batchId", "overallResult"):
            if not test.get(field_name):
                raise ValidationError("is required", path=field_name)
        if test["batchId"] != batch_id:
            raise ValidationError("Batch ID mismatch between parameters and test data", path="batchId")

        record = self._load(tx, batch_id)
        self._require_appendable(record, "test result")
        if any(t["testId"] == test["testId"] for t in record["qualityTests"]):
            raise ConflictError("Test", test["testId"], scope=f"batch {batch_id}")

        record["qualityTests"].append(test)
        self._transition(record, status_for_test_result(test["overallResult"]))

        compliance = record.setdefault("compliance", {})
        if test["overallResult"] == "Pass":
            compliance["fssaiApproved"] = True
        dna = test.get("dnaAuthenticity")
        if dna and dna.get("speciesConfirmed"):
            compliance["ayushCompliant"] = True
        if "ISO" in (test.get("labCertification") or ""):
            compliance["isoCertified"] = True

        self._save(tx, record)
        return {
            "success": True,
            "batchId": batch_id,
            "testId": test["testId"],
            "testResult": test["overallResult"],
            "status": record["currentStatus"],
            "totalTests": len(record["qualityTests"]),
            "message": f"Quality test {test['testId']} added to batch {batch_id}",
        }

    def _new_trace_code(self, tx: Transaction) -> str:
        while True:
            code = secrets.token_hex(8).upper()
            if tx.get_state(trace_key(code)) is None:
                return code

    @requires(PROCESSOR, DISTRIBUTOR)
    def finalize_packaging(self, tx: Transaction, batch_id: str, data: Any) -> dict[str, Any]:
        info = DistributionInfo.from_dict(data or {})
        record = self._load(tx, batch_id)

        status = record["currentStatus"]
        if status != BatchStatus.TESTED_PASS.value:
            logger.warning("Packaging refused for batch %s in status %s", batch_id, status)
            raise RuleViolation(
                f"Batch {batch_id} must pass quality tests before packaging. Current status: {status}"
            )

        code = self._new_trace_code(tx)
        url = f"{self.settings.trace_base_url}/trace/{batch_id}?qr={code}"
        now = tx.timestamp.isoformat()

        distribution = info.to_dict()
        distribution.update({"packageDate": now, "qrCodeId": code, "qrCodeUrl": url})
        record["distributionInfo"] = distribution
        self._transition(record, BatchStatus.PACKAGED)
        self._save(tx, record)

        tx.put_json(trace_key(code), {"code": code, "batchId": batch_id, "url": url, "generatedAt": now})
        return {
            "success": True,
            "batchId": batch_id,
            "status": record["currentStatus"],
            "qrCode": {"qrCodeId": code, "url": url},
            "distributionInfo": distribution,
            "message": f"Batch {batch_id} packaged and ready for distribution",
        }

    @requires(DISTRIBUTOR, REGULATOR)
    def update_distribution_status(self, tx: Transaction, batch_id: str, status: str) -> dict[str, Any]:
        allowed = [s.value for s in DISTRIBUTION_STATUSES]
        if status not in allowed:
            raise ValidationError(f"Invalid status. Valid statuses: {', '.join(allowed)}", path="status")

        record = self._load(tx, batch_id)
        current = BatchStatus(record["currentStatus"])
        target = BatchStatus(status)
        if current in TERMINAL and not (current is BatchStatus.DISTRIBUTED and target is BatchStatus.RECALLED):
            raise RuleViolation(f"Batch {batch_id} is {current.value} and cannot be changed to {status}")
        if current is not BatchStatus.PACKAGED and current not in TERMINAL:
            raise RuleViolation(
                f"Batch {batch_id} must be packaged with finalizePackaging first. Current status: {current.value}"
            )
        self._transition(record, target)
        self._save(tx, record)
        return {
            "success": True,
            "batchId": batch_id,
            "status": status,
            "message": f"Batch {batch_id} status updated to {status}",
        }

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_record(self, tx: Transaction, batch_id: str) -> dict[str, Any]:
        return with_derived(self._load(tx, batch_id))

    def get_by_trace_code(self, tx: Transaction, code: str) -> dict[str, Any]:
        binding = tx.get_json(trace_key(code))
        if binding is None:
            raise NotFoundError("Traceability code", code)
        return self.get_record(tx, binding["batchId"])

    def _records(self, tx: Transaction) -> list[dict[str, Any]]:
        return [v for _, v in tx.scan_prefix(BATCH_PREFIX)]

    def list_by_farmer(self, tx: Transaction, farmer_id: str) -> list[dict[str, Any]]:
        batches = [
            {
                "batchId": r["batchId"],
                "herbType": r["collectionEvent"]["herbType"],
                "status": r["currentStatus"],
                "collectionDate": r["collectionEvent"]["collectionDate"],
                "quantity": r["collectionEvent"]["quantityKg"],
            }
            for r in self._records(tx)
            if r["collectionEvent"]["farmerId"] == farmer_id
        ]
        batches.sort(key=lambda b: parse_datetime(b["collectionDate"], "collectionDate"), reverse=True)
        return batches

    def list_by_status(self, tx: Transaction, status: str) -> list[dict[str, Any]]:
        batches = [
            {
                "batchId": r["batchId"],
                "status": r["currentStatus"],
                "herbType": r["collectionEvent"]["herbType"],
                "lastUpdated": r["lastUpdated"],
                "version": r["version"],
            }
            for r in self._records(tx)
            if r["currentStatus"] == status
        ]
        batches.sort(key=lambda b: parse_datetime(b["lastUpdated"], "lastUpdated"), reverse=True)
        return batches

    def get_stats(self, tx: Transaction) -> dict[str, Any]:
        stats = tx.get_json(STATS_KEY) or {"totalBatches": 0}
        by_status: dict[str, int] = {}
        for r in self._records(tx):
            by_status[r["currentStatus"]] = by_status.get(r["currentStatus"], 0) + 1
        return {
            "totalBatches": stats["totalBatches"],
            "batchesByStatus": by_status,
            "lastUpdated": stats.get("lastUpdated"),
        }
