"""
Caller-side composition of the validators and the provenance machine.

``submit_harvest`` runs every harvest rule, collects all failures, and only
creates the batch and consumes quota when all of them pass. Both happen in the
caller's transaction, so a rejected or conflicting submission leaves no trace.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .config import Settings
from .errors import RuleViolation
from .harvest import HarvestValidator
from .provenance import CollectionEvent, ProvenanceStateMachine
from .quality import QualityValidator
from .schema import require_mapping
from .zones import ZoneValidator

if TYPE_CHECKING:
    from .ledger.transaction import Transaction

logger = logging.getLogger(__name__)


class SubmissionWorkflow:
    def __init__(
        self,
        zones: ZoneValidator,
        harvest: HarvestValidator,
        quality: QualityValidator,
        provenance: ProvenanceStateMachine,
    ):
        self.zones = zones
        self.harvest = harvest
        self.quality = quality
        self.provenance = provenance

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SubmissionWorkflow:
        settings = settings or Settings()
        return cls(
            ZoneValidator(),
            HarvestValidator(settings),
            QualityValidator(settings),
            ProvenanceStateMachine(settings),
        )

    def check_harvest(self, tx: Transaction, event: CollectionEvent) -> dict[str, Any]:
        """
        Run zone, season, quota and zone-limit checks without writing.

        Returns ``{"isValid", "reasons", "shortfall", "checks"}``. The quota
        check may lazily create the year's tracker in the transaction buffer.
        """
        checks: dict[str, Any] = {}
        reasons: list[str] = []
        shortfall: float | None = None

        zone_check = self.zones.validate_point(tx, event.herb_type, event.gps_coordinates)
        checks["zone"] = zone_check
        if not zone_check["isValid"]:
            reasons.append(zone_check["message"])

        season_check = self.harvest.validate_season(
            tx, event.herb_type, event.collection_date, event.gps_coordinates
        )
        checks["season"] = season_check
        if not season_check["isValid"]:
            reasons.append(season_check["message"])

        quota_check = self.harvest.validate_quota(
            tx, event.herb_type, event.quantity_kg, event.farmer_id, event.collection_date
        )
        checks["quota"] = quota_check
        if not quota_check["isValid"]:
            reasons.append(quota_check["message"])
            shortfall = quota_check.get("shortfall")

        zone_limits: list[dict[str, Any]] = []
        for match in zone_check["validZones"]:
            zone = self.zones.get_zone(tx, match["zoneId"])
            result = self.harvest.validate_zone_limits(
                zone,
                event.quantity_kg,
                self.harvest.zone_harvests(tx, zone.zone_id),
                event.collection_date,
                farmer_id=event.farmer_id,
            )
            zone_limits.append(result)
            if not result["isValid"]:
                reasons.append(result["message"])
                if shortfall is None:
                    shortfall = result.get("shortfall")
        checks["zoneLimits"] = zone_limits

        return {"isValid": not reasons, "reasons": reasons, "shortfall": shortfall, "checks": checks}

    def submit_harvest(self, tx: Transaction, data: Any) -> dict[str, Any]:
        event = CollectionEvent.from_dict(data)
        outcome = self.check_harvest(tx, event)
        if not outcome["isValid"]:
            logger.warning("Rejected harvest %s: %s", event.batch_id, "; ".join(outcome["reasons"]))
            raise RuleViolation(
                f"Harvest {event.batch_id} rejected",
                reasons=outcome["reasons"],
                shortfall=outcome["shortfall"],
            )

        created = self.provenance.create_record(tx, event)
        quota = self.harvest.commit_quota(
            tx, event.herb_type, event.quantity_kg, event.farmer_id, event.collection_date
        )
        entry = {
            "batchId": event.batch_id,
            "farmerId": event.farmer_id,
            "herbType": event.herb_type,
            "quantityKg": event.quantity_kg,
            "harvestDate": event.collection_date,
        }
        zone_ids = [z["zoneId"] for z in outcome["checks"]["zone"]["validZones"]]
        for zone_id in zone_ids:
            self.harvest.record_zone_harvest(tx, zone_id, entry)

        return {
            **created,
            "zones": zone_ids,
            "warnings": outcome["checks"]["season"].get("warnings", []),
            "quota": quota["updatedQuota"],
        }

    def submit_test(self, tx: Transaction, data: Any) -> dict[str, Any]:
        payload = dict(require_mapping(data, ""))
        batch_id = payload.get("batchId")
        if not payload.get("herbType") and isinstance(batch_id, str) and batch_id:
            batch = self.provenance.get_record(tx, batch_id)
            payload["herbType"] = batch["collectionEvent"]["herbType"]

        submitted = self.quality.submit_test(tx, payload)
        stored = self.quality.get_test(tx, submitted["testId"])
        appended = self.provenance.append_test_result(tx, stored["batchId"], stored)
        return {**submitted, "status": appended["status"]}
