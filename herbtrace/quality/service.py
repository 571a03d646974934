"""
Quality test admission, lab registry and integrity verification.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from ..auth import LAB, REGULATOR, requires
from ..config import Settings
from ..errors import ConflictError, IntegrityError, NotFoundError, RuleViolation
from ..ledger.codec import compute_hash, decode_value, encode_value
from ..schema import parse_datetime
from .labs import SEED_LABS, LabCertification, lab_key
from .records import TEST_PREFIX, QualityTestPayload, quality_test_key, test_history_key
from .rules import evaluate
from .standards import (
    DEFAULT_HERB,
    DEFAULT_STANDARDS,
    STANDARDS_PREFIX,
    QualityStandardSet,
    builtin_standards,
    standards_key,
)

if TYPE_CHECKING:
    from ..ledger.transaction import Transaction

logger = logging.getLogger(__name__)


class QualityValidator:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    # -------------------------------------------------------------------------
    # Standards
    # -------------------------------------------------------------------------

    def standards_for(self, tx: Transaction, herb_type: str) -> QualityStandardSet:
        """Ledger standards for herb_type, then ledger default, then built-ins."""
        for name in (herb_type, DEFAULT_HERB):
            data = tx.get_json(standards_key(name))
            if data is not None:
                return QualityStandardSet.from_dict(name, data)
        return builtin_standards(herb_type)

    def get_standards(self, tx: Transaction, herb_type: str = DEFAULT_HERB) -> dict[str, Any]:
        standard = self.standards_for(tx, herb_type)
        available = [k[len(STANDARDS_PREFIX):] for k, _ in tx.scan_prefix(STANDARDS_PREFIX)]
        return {
            "herbType": herb_type,
            "appliedStandard": standard.herb_type,
            "standards": standard.to_dict(),
            "availableHerbs": available or sorted(DEFAULT_STANDARDS),
        }

    @requires(REGULATOR)
    def update_standards(self, tx: Transaction, herb_type: str, data: Any) -> dict[str, Any]:
        standard = QualityStandardSet.from_dict(herb_type, data)
        tx.put_json(standards_key(herb_type), standard.to_dict())
        logger.info("Quality standards updated for %s by %s", herb_type, tx.identity.actor)
        return {
            "success": True,
            "message": f"Quality standards updated for {herb_type}",
            "updatedStandards": standard.to_dict(),
        }

    # -------------------------------------------------------------------------
    # Labs
    # -------------------------------------------------------------------------

    @requires(REGULATOR)
    def register_lab(self, tx: Transaction, data: Any) -> dict[str, Any]:
        lab = LabCertification.from_dict(data)
        if tx.get_state(lab_key(lab.lab_id)) is not None:
            raise ConflictError("Lab", lab.lab_id)
        record = lab.to_dict()
        record["registeredAt"] = tx.timestamp.isoformat()
        tx.put_json(lab_key(lab.lab_id), record)
        logger.info("Registered lab %s (%s)", lab.lab_id, ", ".join(lab.test_capabilities))
        return {"success": True, "message": f"Lab {lab.lab_id} registered successfully", "labId": lab.lab_id}

    def get_lab(self, tx: Transaction, lab_id: str) -> LabCertification:
        data = tx.get_json(lab_key(lab_id))
        if data is None:
            raise NotFoundError("Lab", lab_id)
        return LabCertification.from_dict(data)

    @requires(REGULATOR)
    def init_quality(self, tx: Transaction) -> dict[str, Any]:
        """Install seed standards and labs, skipping any already present."""
        standards: list[str] = []
        for herb, data in DEFAULT_STANDARDS.items():
            if tx.get_state(standards_key(herb)) is None:
                tx.put_json(standards_key(herb), QualityStandardSet.from_dict(herb, data).to_dict())
                standards.append(herb)
        labs: list[str] = []
        for raw in SEED_LABS:
            lab = LabCertification.from_dict(raw)
            if tx.get_state(lab_key(lab.lab_id)) is None:
                record = lab.to_dict()
                record["registeredAt"] = tx.timestamp.isoformat()
                tx.put_json(lab_key(lab.lab_id), record)
                labs.append(lab.lab_id)
        logger.info("Seeded standards %s and labs %s", standards or "none", labs or "none")
        return {"success": True, "standards": standards, "labs": labs}

    # -------------------------------------------------------------------------
    # Tests
    # -------------------------------------------------------------------------

    @requires(LAB)
    def submit_test(self, tx: Transaction, data: Any) -> dict[str, Any]:
        test = QualityTestPayload.from_dict(data)

        if tx.get_state(quality_test_key(test.test_id)) is not None:
            raise ConflictError("Test", test.test_id)

        lab = self.get_lab(tx, test.lab_id)
        problem = lab.scope_problem(test.test_type, tx.timestamp.date())
        if problem:
            logger.warning("Rejected test %s: %s", test.test_id, problem)
            raise RuleViolation(problem)

        herb_type = test.herb_type or DEFAULT_HERB
        standard = self.standards_for(tx, herb_type)
        result = evaluate(
            test,
            standard,
            herb_type=herb_type,
            dna_match_threshold=self.settings.dna_match_threshold,
        )

        record = test.to_dict()
        record["validationResult"] = result.to_dict()
        record["overallResult"] = result.overall_result
        record["createdAt"] = tx.timestamp.isoformat()
        record["dataHash"] = compute_hash(record)
        tx.put_json(quality_test_key(test.test_id), record)

        self._append_history(tx, test.batch_id, test.test_id, result.overall_result)
        logger.info(
            "Test %s for batch %s: %s (%d violation(s), %d warning(s))",
            test.test_id,
            test.batch_id,
            result.overall_result,
            len(result.violations),
            len(result.warnings),
        )
        return {
            "success": True,
            "testId": test.test_id,
            "overallResult": result.overall_result,
            "validationResult": result.to_dict(),
            "message": f"Test results submitted successfully for batch {test.batch_id}",
        }

    def _append_history(self, tx: Transaction, batch_id: str, test_id: str, result: str) -> None:
        key = test_history_key(batch_id)
        history = tx.get_json(key) or {"batchId": batch_id, "tests": []}
        history["tests"].append({"testId": test_id, "result": result, "timestamp": tx.timestamp.isoformat()})
        history["lastUpdated"] = tx.timestamp.isoformat()
        tx.put_json(key, history)

    def get_test(self, tx: Transaction, test_id: str) -> dict[str, Any]:
        data = tx.get_json(quality_test_key(test_id))
        if data is None:
            raise NotFoundError("Test", test_id)
        return data

    def get_batch_tests(self, tx: Transaction, batch_id: str) -> list[dict[str, Any]]:
        """All tests for a batch, newest testDate first."""
        tests = [v for _, v in tx.scan_prefix(TEST_PREFIX) if v.get("batchId") == batch_id]
        tests.sort(key=lambda t: parse_datetime(t["testDate"], "testDate"), reverse=True)
        return tests

    def get_batch_test_history(self, tx: Transaction, batch_id: str) -> dict[str, Any]:
        history = tx.get_json(test_history_key(batch_id))
        if history is None:
            return {"batchId": batch_id, "tests": [], "message": "No test history found"}
        return history

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    def verify_authenticity(self, tx: Transaction, test_id: str) -> dict[str, Any]:
        raw = tx.get_state(quality_test_key(test_id))
        if raw is None:
            raise NotFoundError("Test", test_id)

        try:
            data = decode_value(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            data = None
        if not isinstance(data, dict):
            return {
                "testId": test_id,
                "isAuthentic": False,
                "storedHash": None,
                "calculatedHash": compute_hash(raw),
                "message": "Test data integrity compromised: stored record is unreadable",
            }

        # bytes that parse to the same value but differ from the canonical form were edited
        canonical = encode_value(data) == raw
        stored_hash = data.pop("dataHash", None)
        calculated_hash = compute_hash(data)
        is_authentic = canonical and stored_hash == calculated_hash
        if not is_authentic:
            logger.warning("Integrity mismatch for test %s", test_id)
        if is_authentic:
            message = "Test data is authentic"
        elif not canonical:
            message = "Test data integrity compromised: stored record is not in canonical form"
        else:
            message = "Test data integrity compromised"
        return {
            "testId": test_id,
            "isAuthentic": is_authentic,
            "storedHash": stored_hash,
            "calculatedHash": calculated_hash,
            "message": message,
        }

    def require_authentic(self, tx: Transaction, test_id: str) -> dict[str, Any]:
        result = self.verify_authenticity(tx, test_id)
        if not result["isAuthentic"]:
            raise IntegrityError(test_id, result["storedHash"], result["calculatedHash"])
        return result
