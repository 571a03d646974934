"""
Harvest rules: seasonality, yearly sustainability quotas, zone limits.

Quota state is one versioned record per year (``QUOTA~<year>``) plus one per
farmer and year (``FARMER~<farmerId>~<year>``). Validation and consumption run
in the same transaction; the world state's read-set check turns a race between
two submissions into a WriteConflictError for the later one.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from .auth import REGULATOR, requires
from .config import Settings
from .errors import NotFoundError, ValidationError
from .geo import GeoPoint
from .schema import check_keys, parse_datetime, require_mapping
from .zones import SEASONS

if TYPE_CHECKING:
    from .ledger.transaction import Transaction
    from .zones import CultivationZone

logger = logging.getLogger(__name__)

ALLOWED_SEASONS: dict[str, list[str]] = {
    "Ashwagandha": ["Winter", "Spring"],
    "Turmeric": ["Winter", "Spring"],
    "Ginger": ["Winter", "Spring"],
    "Tulsi": ["Summer", "Monsoon", "Autumn"],
    "Neem": ["Summer", "Monsoon"],
    "Brahmi": ["Summer", "Monsoon", "Autumn"],
    "Amla": ["Winter", "Spring"],
    "Arjuna": ["Spring", "Summer"],
    "Shatavari": ["Spring", "Summer", "Autumn"],
    "Guduchi": ["Summer", "Monsoon"],
}

# herb -> (optimal months, advisory)
OPTIMAL_MONTHS: dict[str, tuple[tuple[int, ...], str]] = {
    "Ashwagandha": ((11, 12, 1, 2, 3, 4), "Ashwagandha should be harvested in winter/spring (Nov-Apr) for optimal potency"),
    "Turmeric": ((12, 1, 2, 3, 4, 5), "Turmeric should be harvested after 8-9 months of planting (Dec-May)"),
    "Tulsi": ((6, 7, 8, 9, 10), "Tulsi leaves are best harvested during summer and monsoon (Jun-Oct)"),
    "Neem": ((5, 6, 7, 8, 9), "Neem is typically harvested during summer and early monsoon (May-Sep)"),
}

OTHER_BUCKET = "Other"
QUOTA_PREFIX = "QUOTA~"
FARMER_PREFIX = "FARMER~"
ZONE_LOG_PREFIX = "ZONELOG~"


def quota_key(year: int | str) -> str:
    return f"{QUOTA_PREFIX}{year}"


def farmer_key(farmer_id: str, year: int | str) -> str:
    return f"{FARMER_PREFIX}{farmer_id}~{year}"


def zone_log_key(zone_id: str) -> str:
    return f"{ZONE_LOG_PREFIX}{zone_id}"


def season_for(month: int, hemisphere: str = "north") -> str:
    """Meteorological season for a month (1-12)."""
    if hemisphere == "north":
        if 3 <= month <= 5:
            return "Spring"
        if 6 <= month <= 8:
            return "Summer"
        if 9 <= month <= 11:
            return "Autumn"
        return "Winter"
    if 3 <= month <= 5:
        return "Autumn"
    if 6 <= month <= 8:
        return "Winter"
    if 9 <= month <= 11:
        return "Spring"
    return "Summer"


def allowed_seasons(herb_type: str) -> list[str]:
    return list(ALLOWED_SEASONS.get(herb_type, SEASONS))


def _as_datetime(value: datetime | str, path: str) -> datetime:
    if isinstance(value, datetime):
        return value
    return parse_datetime(value, path)


def _pct(used: float, quota: float) -> float:
    return round(used / quota * 100, 2) if quota else 0.0


def _quantity(value: Any, path: str = "quantityKg") -> float:
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise ValidationError("must be a number", path=path) from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("must be a number", path=path)
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("Harvest quantity must be positive", path=path)
    return value


class HarvestValidator:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    # -------------------------------------------------------------------------
    # Season
    # -------------------------------------------------------------------------

    def validate_season(
        self,
        tx: Transaction,
        herb_type: str,
        harvest_date: datetime | str,
        gps: GeoPoint | dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        when = _as_datetime(harvest_date, "harvestDate")
        harvest_date_text = harvest_date if isinstance(harvest_date, str) else harvest_date.isoformat()
        if gps is not None and not isinstance(gps, GeoPoint):
            gps = GeoPoint.from_dict(gps, "gpsCoordinates")

        hemisphere = "south" if gps is not None and gps.latitude < 0 else "north"
        season = season_for(when.month, hemisphere)
        allowed = allowed_seasons(herb_type)

        now = tx.timestamp
        if when > now:
            return {
                "isValid": False,
                "message": "Harvest date cannot be in the future",
                "season": season,
                "harvestDate": harvest_date_text,
            }
        if (now - when) > timedelta(days=self.settings.max_harvest_age_days):
            return {
                "isValid": False,
                "message": f"Harvest date is too old (more than {self.settings.max_harvest_age_days} days)",
                "season": season,
                "harvestDate": harvest_date_text,
            }

        is_valid = season in allowed
        if is_valid:
            message = f"Harvest season {season} is valid for {herb_type}"
        else:
            message = f"Invalid harvest season {season} for {herb_type}. Allowed seasons: {', '.join(allowed)}"

        warnings: list[str] = []
        optimal = OPTIMAL_MONTHS.get(herb_type)
        is_optimal = True
        if optimal is not None and when.month not in optimal[0]:
            is_optimal = False
            warnings.append(optimal[1])
            message += f". Warning: {optimal[1]}"

        return {
            "isValid": is_valid,
            "isOptimalSeason": is_optimal,
            "message": message,
            "warnings": warnings,
            "season": season,
            "harvestMonth": when.month,
            "harvestDate": harvest_date_text,
            "allowedSeasons": allowed,
        }

    # -------------------------------------------------------------------------
    # Quota ledger
    # -------------------------------------------------------------------------

    def _default_year(self, year: int, tx: Transaction) -> dict[str, Any]:
        quota = self.settings.quota
        return {
            "year": year,
            "totalQuota": quota.total,
            "usedQuota": 0,
            "herbQuotas": {herb: {"quota": q, "used": 0} for herb, q in quota.herbs.items()},
            "lastUpdated": tx.timestamp.isoformat(),
        }

    def _year_tracker(self, tx: Transaction, year: int, *, create: bool) -> dict[str, Any] | None:
        tracker = tx.get_json(quota_key(year))
        if tracker is None and create:
            tracker = self._default_year(year, tx)
            tx.put_json(quota_key(year), tracker)
            logger.info("Created quota tracker for %d from defaults", year)
        return tracker

    def _farmer_history(self, tx: Transaction, farmer_id: str, year: int) -> dict[str, Any]:
        history = tx.get_json(farmer_key(farmer_id, year))
        if history is None:
            return {"farmerId": farmer_id, "year": year, "totalHarvest": 0, "herbHarvests": {}}
        return history

    @staticmethod
    def _bucket_name(tracker: dict[str, Any], herb_type: str) -> str:
        return herb_type if herb_type in tracker["herbQuotas"] else OTHER_BUCKET

    def validate_quota(
        self,
        tx: Transaction,
        herb_type: str,
        quantity_kg: Any,
        farmer_id: str,
        harvest_date: datetime | str,
    ) -> dict[str, Any]:
        quantity = _quantity(quantity_kg)
        year = _as_datetime(harvest_date, "harvestDate").year

        tracker = self._year_tracker(tx, year, create=True)
        assert tracker is not None
        bucket_name = self._bucket_name(tracker, herb_type)
        bucket = tracker["herbQuotas"].get(bucket_name, {"quota": 0, "used": 0})

        remaining = bucket["quota"] - bucket["used"]
        quota_status = {
            "herbType": herb_type,
            "bucket": bucket_name,
            "requested": quantity,
            "available": remaining,
            "total": bucket["quota"],
            "used": bucket["used"],
            "utilization": _pct(bucket["used"], bucket["quota"]),
        }
        if quantity > remaining:
            return {
                "isValid": False,
                "reason": "herb-quota",
                "message": f"Insufficient quota for {herb_type}. Requested: {quantity:g}kg, Available: {remaining:g}kg",
                "shortfall": quantity - remaining,
                "quotaStatus": quota_status,
            }

        total_remaining = tracker["totalQuota"] - tracker["usedQuota"]
        if quantity > total_remaining:
            return {
                "isValid": False,
                "reason": "total-quota",
                "message": f"Insufficient total quota. Requested: {quantity:g}kg, Available total: {total_remaining:g}kg",
                "shortfall": quantity - total_remaining,
                "quotaStatus": {
                    "totalRequested": quantity,
                    "totalAvailable": total_remaining,
                    "totalQuota": tracker["totalQuota"],
                    "totalUsed": tracker["usedQuota"],
                },
            }

        history = self._farmer_history(tx, farmer_id, year)
        max_farmer = tracker["totalQuota"] * self.settings.max_farmer_share
        farmer_status = {
            "farmerId": farmer_id,
            "maxAllowed": max_farmer,
            "currentTotal": history["totalHarvest"],
            "requested": quantity,
        }
        if history["totalHarvest"] + quantity > max_farmer:
            return {
                "isValid": False,
                "reason": "farmer-share",
                "message": (
                    f"Farmer quota exceeded. Maximum allowed: {max_farmer:g}kg per year, "
                    f"Current: {history['totalHarvest']:g}kg, Requested: {quantity:g}kg"
                ),
                "shortfall": history["totalHarvest"] + quantity - max_farmer,
                "farmerQuotaStatus": farmer_status,
            }

        farmer_status["newTotal"] = history["totalHarvest"] + quantity
        return {
            "isValid": True,
            "message": f"Sustainability quota validated for {quantity:g}kg of {herb_type}",
            "quotaStatus": quota_status,
            "farmerQuotaStatus": farmer_status,
        }

    def commit_quota(
        self,
        tx: Transaction,
        herb_type: str,
        quantity_kg: Any,
        farmer_id: str,
        harvest_date: datetime | str,
    ) -> dict[str, Any]:
        """Add quantity to herb, total and farmer usage. No ceiling check."""
        quantity = _quantity(quantity_kg)
        year = _as_datetime(harvest_date, "harvestDate").year
        now = tx.timestamp.isoformat()

        tracker = self._year_tracker(tx, year, create=True)
        assert tracker is not None
        bucket_name = self._bucket_name(tracker, herb_type)
        bucket = tracker["herbQuotas"].setdefault(bucket_name, {"quota": 0, "used": 0})
        bucket["used"] += quantity
        tracker["usedQuota"] += quantity
        tracker["lastUpdated"] = now
        tx.put_json(quota_key(year), tracker)

        history = self._farmer_history(tx, farmer_id, year)
        history["totalHarvest"] += quantity
        history["herbHarvests"][herb_type] = history["herbHarvests"].get(herb_type, 0) + quantity
        history["lastUpdated"] = now
        tx.put_json(farmer_key(farmer_id, year), history)

        logger.info("Consumed %gkg of %s quota (%s) for farmer %s in %d", quantity, herb_type, bucket_name, farmer_id, year)
        return {
            "success": True,
            "message": f"Quota usage updated: {quantity:g}kg of {herb_type} for farmer {farmer_id}",
            "updatedQuota": {
                "herbType": herb_type,
                "used": bucket["used"],
                "remaining": bucket["quota"] - bucket["used"],
                "utilization": _pct(bucket["used"], bucket["quota"]),
            },
            "farmerStatus": {
                "farmerId": farmer_id,
                "totalHarvest": history["totalHarvest"],
                "herbHarvest": history["herbHarvests"][herb_type],
            },
        }

    @requires(REGULATOR)
    def set_quota_limits(self, tx: Transaction, year: int | str, data: Any) -> dict[str, Any]:
        """Adjust ceilings for a year. ``used`` values are never touched."""
        data = require_mapping(data, "quotaLimits")
        check_keys(data, ("totalQuota", "herbQuotas"), "quotaLimits")
        try:
            year_num = int(year)
        except (TypeError, ValueError):
            raise ValidationError("must be a year", path="year") from None

        tracker = self._year_tracker(tx, year_num, create=True)
        assert tracker is not None

        total = data.get("totalQuota")
        if total is not None:
            tracker["totalQuota"] = _quantity(total, "quotaLimits.totalQuota")

        herbs = data.get("herbQuotas")
        if herbs is not None:
            herbs = require_mapping(herbs, "quotaLimits.herbQuotas")
            for herb, quota in herbs.items():
                ceiling = _quantity(quota, f"quotaLimits.herbQuotas.{herb}")
                tracker["herbQuotas"].setdefault(herb, {"quota": 0, "used": 0})["quota"] = ceiling

        tracker["lastUpdated"] = tx.timestamp.isoformat()
        tx.put_json(quota_key(year_num), tracker)
        logger.info("Quota limits updated for %d by %s", year_num, tx.identity.actor)
        return {"success": True, "message": f"Quota limits updated for year {year_num}", "updatedQuotas": tracker}

    def get_quota_status(self, tx: Transaction, year: int | str) -> dict[str, Any]:
        tracker = tx.get_json(quota_key(year))
        if tracker is None:
            raise NotFoundError("Quota year", str(year))
        return {
            "year": tracker["year"],
            "totalQuota": tracker["totalQuota"],
            "totalUsed": tracker["usedQuota"],
            "totalRemaining": tracker["totalQuota"] - tracker["usedQuota"],
            "totalUtilization": _pct(tracker["usedQuota"], tracker["totalQuota"]),
            "herbQuotas": {
                herb: {
                    "quota": b["quota"],
                    "used": b["used"],
                    "remaining": b["quota"] - b["used"],
                    "utilization": _pct(b["used"], b["quota"]),
                }
                for herb, b in sorted(tracker["herbQuotas"].items())
            },
            "lastUpdated": tracker.get("lastUpdated"),
        }

    def get_farmer_history(self, tx: Transaction, farmer_id: str, year: int | str) -> dict[str, Any]:
        history = tx.get_json(farmer_key(farmer_id, year))
        if history is None:
            return {
                "farmerId": farmer_id,
                "year": int(year),
                "totalHarvest": 0,
                "herbHarvests": {},
                "message": "No harvest history found for this farmer in the specified year",
            }
        return history

    # -------------------------------------------------------------------------
    # Zone sustainability limits
    # -------------------------------------------------------------------------

    def validate_zone_limits(
        self,
        zone: CultivationZone,
        quantity_kg: Any,
        previous_harvests: list[dict[str, Any]],
        harvest_date: datetime | str,
        *,
        farmer_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Check a zone's maxAnnualHarvest and minRegenerationPeriod.

        previous_harvests entries carry farmerId, herbType, quantityKg and
        harvestDate. The annual limit counts every harvest in the zone in the
        same calendar year. The regeneration period applies to the same
        farmer's earlier harvests of the zone when farmer_id is given, and to
        all earlier harvests otherwise.
        """
        quantity = _quantity(quantity_kg)
        when = _as_datetime(harvest_date, "harvestDate")
        limits = zone.sustainability_limits
        base = {"zoneId": zone.zone_id, "requested": quantity}
        if limits is None:
            return {"isValid": True, "message": f"No sustainability limits for zone {zone.zone_id}", **base}

        if limits.max_annual_harvest is not None:
            used = sum(
                h["quantityKg"] for h in previous_harvests
                if _as_datetime(h["harvestDate"], "harvestDate").year == when.year
            )
            if used + quantity > limits.max_annual_harvest:
                return {
                    "isValid": False,
                    "reason": "zone-annual-limit",
                    "message": (
                        f"Zone {zone.zone_id} annual harvest limit exceeded. Maximum: {limits.max_annual_harvest:g}kg, "
                        f"Harvested: {used:g}kg, Requested: {quantity:g}kg"
                    ),
                    "shortfall": used + quantity - limits.max_annual_harvest,
                    **base,
                }

        if limits.min_regeneration_period is not None:
            relevant = [h for h in previous_harvests if farmer_id is None or h.get("farmerId") == farmer_id]
            window = timedelta(days=limits.min_regeneration_period)
            for h in relevant:
                prior = _as_datetime(h["harvestDate"], "harvestDate")
                if prior <= when and when - prior < window:
                    next_allowed: date = (prior + window).date()
                    return {
                        "isValid": False,
                        "reason": "zone-regeneration",
                        "message": (
                            f"Zone {zone.zone_id} needs {limits.min_regeneration_period:g} days to regenerate; "
                            f"next harvest allowed from {next_allowed.isoformat()}"
                        ),
                        **base,
                    }

        return {"isValid": True, "message": f"Zone {zone.zone_id} sustainability limits satisfied", **base}

    def zone_harvests(self, tx: Transaction, zone_id: str) -> list[dict[str, Any]]:
        return list(tx.get_json(zone_log_key(zone_id)) or [])

    def record_zone_harvest(self, tx: Transaction, zone_id: str, entry: dict[str, Any]) -> None:
        harvests = self.zone_harvests(tx, zone_id)
        harvests.append(entry)
        tx.put_json(zone_log_key(zone_id), harvests)
