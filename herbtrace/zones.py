"""
Cultivation zones: approved harvest areas per herb.

A zone is either a circle (centerPoint + radius in metres) or a polygon of at
least three boundary vertices. Zones are created by a regulator, toggled
active/inactive, and never deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from .auth import REGULATOR, requires
from .errors import ConflictError, NotFoundError, ValidationError
from .geo import GeoPoint, haversine_distance, point_in_circle, point_in_polygon
from .schema import (
    check_keys,
    opt_bool,
    opt_mapping,
    opt_number,
    opt_str,
    req_str,
    require_mapping,
    str_list,
)

if TYPE_CHECKING:
    from .ledger.transaction import Transaction

logger = logging.getLogger(__name__)

ZONE_PREFIX = "ZONE~"

SEASONS = ("Spring", "Summer", "Monsoon", "Autumn", "Winter")


def zone_key(zone_id: str) -> str:
    return f"{ZONE_PREFIX}{zone_id}"


def _month_day(value: str, path: str) -> str:
    parts = value.split("-")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValidationError("must be MM-DD", path=path)
    month, day = int(parts[0]), int(parts[1])
    if not (1 <= month <= 12 and 1 <= day <= 31):
        raise ValidationError("must be MM-DD", path=path)
    return value


@dataclass(frozen=True)
class SeasonalRestrictions:
    allowed_seasons: list[str] = field(default_factory=list)
    harvest_window_start: str | None = None  # MM-DD
    harvest_window_end: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> SeasonalRestrictions:
        check_keys(data, ("allowedSeasons", "harvestWindow"), path)
        seasons = str_list(data, "allowedSeasons", path)
        bad = [s for s in seasons if s not in SEASONS]
        if bad:
            raise ValidationError(f"unknown season(s): {', '.join(bad)}", path=f"{path}.allowedSeasons")

        start = end = None
        window = opt_mapping(data, "harvestWindow", path)
        if window is not None:
            wpath = f"{path}.harvestWindow"
            check_keys(window, ("startDate", "endDate"), wpath)
            start = opt_str(window, "startDate", wpath)
            end = opt_str(window, "endDate", wpath)
            if start is not None:
                _month_day(start, f"{wpath}.startDate")
            if end is not None:
                _month_day(end, f"{wpath}.endDate")
        return cls(allowed_seasons=seasons, harvest_window_start=start, harvest_window_end=end)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.allowed_seasons:
            result["allowedSeasons"] = list(self.allowed_seasons)
        window: dict[str, str] = {}
        if self.harvest_window_start:
            window["startDate"] = self.harvest_window_start
        if self.harvest_window_end:
            window["endDate"] = self.harvest_window_end
        if window:
            result["harvestWindow"] = window
        return result


@dataclass(frozen=True)
class SustainabilityLimits:
    max_annual_harvest: float | None = None  # kg
    min_regeneration_period: float | None = None  # days
    max_harvest_percentage: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str) -> SustainabilityLimits:
        check_keys(data, ("maxAnnualHarvest", "minRegenerationPeriod", "maxHarvestPercentage"), path)
        return cls(
            max_annual_harvest=opt_number(data, "maxAnnualHarvest", path, gt=0),
            min_regeneration_period=opt_number(data, "minRegenerationPeriod", path, gt=0),
            max_harvest_percentage=opt_number(data, "maxHarvestPercentage", path, ge=0, le=100),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.max_annual_harvest is not None:
            result["maxAnnualHarvest"] = self.max_annual_harvest
        if self.min_regeneration_period is not None:
            result["minRegenerationPeriod"] = self.min_regeneration_period
        if self.max_harvest_percentage is not None:
            result["maxHarvestPercentage"] = self.max_harvest_percentage
        return result


@dataclass(frozen=True)
class CultivationZone:
    zone_id: str
    zone_name: str
    herb_types: list[str]
    center_point: GeoPoint | None = None
    radius: float | None = None  # metres
    boundaries: list[GeoPoint] = field(default_factory=list)
    altitude_min: float | None = None
    altitude_max: float | None = None
    soil_type: str | None = None
    climate_zone: str | None = None
    seasonal_restrictions: SeasonalRestrictions | None = None
    sustainability_limits: SustainabilityLimits | None = None
    is_active: bool = True
    created_at: str | None = None
    last_updated: str | None = None

    FIELDS = (
        "zoneId",
        "zoneName",
        "herbTypes",
        "centerPoint",
        "radius",
        "boundaries",
        "altitude",
        "soilType",
        "climateZone",
        "seasonalRestrictions",
        "sustainabilityLimits",
        "isActive",
        "createdAt",
        "lastUpdated",
    )

    @property
    def is_polygon(self) -> bool:
        return bool(self.boundaries)

    @classmethod
    def from_dict(cls, data: Any, path: str = "zone") -> CultivationZone:
        data = require_mapping(data, path)
        check_keys(data, cls.FIELDS, path)

        center_raw = data.get("centerPoint")
        center = GeoPoint.from_dict(center_raw, f"{path}.centerPoint") if center_raw is not None else None
        radius = opt_number(data, "radius", path, gt=0)

        boundaries_raw = data.get("boundaries")
        boundaries: list[GeoPoint] = []
        if boundaries_raw is not None:
            if not isinstance(boundaries_raw, list):
                raise ValidationError("must be a list of points", path=f"{path}.boundaries")
            boundaries = [GeoPoint.from_dict(p, f"{path}.boundaries[{i}]") for i, p in enumerate(boundaries_raw)]
            if len(boundaries) < 3:
                raise ValidationError("needs at least 3 points", path=f"{path}.boundaries")

        if radius is not None and boundaries:
            raise ValidationError("give either radius or boundaries, not both", path=path)
        if radius is None and not boundaries:
            raise ValidationError("zone shape requires radius or boundaries", path=path)
        if radius is not None and center is None:
            raise ValidationError("circular zone requires centerPoint", path=f"{path}.centerPoint")

        altitude = opt_mapping(data, "altitude", path)
        alt_min = alt_max = None
        if altitude is not None:
            check_keys(altitude, ("min", "max"), f"{path}.altitude")
            alt_min = opt_number(altitude, "min", f"{path}.altitude")
            alt_max = opt_number(altitude, "max", f"{path}.altitude")
            if alt_min is not None and alt_max is not None and alt_min > alt_max:
                raise ValidationError("min must not exceed max", path=f"{path}.altitude")

        seasonal = opt_mapping(data, "seasonalRestrictions", path)
        limits = opt_mapping(data, "sustainabilityLimits", path)
        active = opt_bool(data, "isActive", path)

        return cls(
            zone_id=req_str(data, "zoneId", path),
            zone_name=req_str(data, "zoneName", path),
            herb_types=str_list(data, "herbTypes", path, required=True),
            center_point=center,
            radius=radius,
            boundaries=boundaries,
            altitude_min=alt_min,
            altitude_max=alt_max,
            soil_type=opt_str(data, "soilType", path),
            climate_zone=opt_str(data, "climateZone", path),
            seasonal_restrictions=(
                SeasonalRestrictions.from_dict(seasonal, f"{path}.seasonalRestrictions") if seasonal is not None else None
            ),
            sustainability_limits=(
                SustainabilityLimits.from_dict(limits, f"{path}.sustainabilityLimits") if limits is not None else None
            ),
            is_active=True if active is None else active,
            created_at=opt_str(data, "createdAt", path),
            last_updated=opt_str(data, "lastUpdated", path),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "zoneId": self.zone_id,
            "zoneName": self.zone_name,
            "herbTypes": list(self.herb_types),
            "isActive": self.is_active,
        }
        if self.center_point is not None:
            result["centerPoint"] = self.center_point.to_dict()
        if self.radius is not None:
            result["radius"] = self.radius
        if self.boundaries:
            result["boundaries"] = [p.to_dict() for p in self.boundaries]
        if self.altitude_min is not None or self.altitude_max is not None:
            altitude: dict[str, float] = {}
            if self.altitude_min is not None:
                altitude["min"] = self.altitude_min
            if self.altitude_max is not None:
                altitude["max"] = self.altitude_max
            result["altitude"] = altitude
        if self.soil_type:
            result["soilType"] = self.soil_type
        if self.climate_zone:
            result["climateZone"] = self.climate_zone
        if self.seasonal_restrictions is not None:
            result["seasonalRestrictions"] = self.seasonal_restrictions.to_dict()
        if self.sustainability_limits is not None:
            result["sustainabilityLimits"] = self.sustainability_limits.to_dict()
        if self.created_at:
            result["createdAt"] = self.created_at
        if self.last_updated:
            result["lastUpdated"] = self.last_updated
        return result

    def contains(self, point: GeoPoint) -> tuple[bool, float | None]:
        """(contained, distance to center in metres or None)."""
        if self.is_polygon:
            inside = point_in_polygon(point, self.boundaries)
            distance = haversine_distance(point, self.center_point) if self.center_point else None
            return inside, distance
        assert self.center_point is not None and self.radius is not None
        return point_in_circle(point, self.center_point, self.radius)


REFERENCE_ZONES: list[dict[str, Any]] = [
    {
        "zoneId": "ZONE001",
        "zoneName": "Kerala Highlands - Ashwagandha Zone",
        "herbTypes": ["Ashwagandha", "Brahmi", "Shatavari"],
        "centerPoint": {"latitude": 10.1632, "longitude": 76.6413, "accuracy": 10},
        "radius": 50000,
        "altitude": {"min": 500, "max": 1500},
        "soilType": "Red laterite soil",
        "climateZone": "Tropical highland",
        "seasonalRestrictions": {
            "allowedSeasons": ["Winter", "Spring"],
            "harvestWindow": {"startDate": "11-01", "endDate": "04-30"},
        },
        "sustainabilityLimits": {"maxAnnualHarvest": 10000, "minRegenerationPeriod": 90, "maxHarvestPercentage": 30},
    },
    {
        "zoneId": "ZONE002",
        "zoneName": "Tamil Nadu Plains - Turmeric Zone",
        "herbTypes": ["Turmeric", "Ginger"],
        "centerPoint": {"latitude": 11.1271, "longitude": 78.6569, "accuracy": 10},
        "radius": 30000,
        "soilType": "Alluvial soil",
        "climateZone": "Tropical plains",
        "seasonalRestrictions": {
            "allowedSeasons": ["Winter", "Spring"],
            "harvestWindow": {"startDate": "12-01", "endDate": "05-31"},
        },
        "sustainabilityLimits": {"maxAnnualHarvest": 15000, "minRegenerationPeriod": 120, "maxHarvestPercentage": 25},
    },
    {
        "zoneId": "ZONE003",
        "zoneName": "Maharashtra Western Ghats - Medicinal Zone",
        "herbTypes": ["Tulsi", "Neem", "Arjuna", "Amla"],
        "boundaries": [
            {"latitude": 18.5204, "longitude": 73.8567, "accuracy": 10},
            {"latitude": 18.6298, "longitude": 73.7997, "accuracy": 10},
            {"latitude": 18.5678, "longitude": 73.9123, "accuracy": 10},
            {"latitude": 18.4891, "longitude": 73.8789, "accuracy": 10},
        ],
        "centerPoint": {"latitude": 18.5518, "longitude": 73.8567, "accuracy": 10},
        "altitude": {"min": 200, "max": 800},
        "soilType": "Black cotton soil",
        "climateZone": "Semi-arid tropical",
    },
]


class ZoneValidator:
    """Zone registry and GPS containment checks."""

    def _load(self, tx: Transaction, zone_id: str) -> CultivationZone:
        data = tx.get_json(zone_key(zone_id))
        if data is None:
            raise NotFoundError("Zone", zone_id)
        return CultivationZone.from_dict(data)

    def _put(self, tx: Transaction, zone: CultivationZone) -> None:
        tx.put_json(zone_key(zone.zone_id), zone.to_dict())

    @requires(REGULATOR)
    def add_zone(self, tx: Transaction, data: Any) -> dict[str, Any]:
        zone = CultivationZone.from_dict(data)
        if tx.get_state(zone_key(zone.zone_id)) is not None:
            raise ConflictError("Zone", zone.zone_id)

        zone = replace(zone, created_at=tx.timestamp.isoformat(), last_updated=None)
        self._put(tx, zone)
        logger.info("Added zone %s (%s) for %s", zone.zone_id, zone.zone_name, ", ".join(zone.herb_types))
        return {"success": True, "message": f"Zone {zone.zone_id} added successfully", "zoneId": zone.zone_id}

    @requires(REGULATOR)
    def set_zone_active(self, tx: Transaction, zone_id: str, active: bool) -> dict[str, Any]:
        zone = self._load(tx, zone_id)
        zone = replace(zone, is_active=bool(active), last_updated=tx.timestamp.isoformat())
        self._put(tx, zone)
        state = "activated" if zone.is_active else "deactivated"
        logger.info("Zone %s %s", zone_id, state)
        return {"success": True, "message": f"Zone {zone_id} {state} successfully", "zoneId": zone_id, "isActive": zone.is_active}

    @requires(REGULATOR)
    def init_zones(self, tx: Transaction) -> dict[str, Any]:
        """Install the reference zones, skipping ids already present."""
        added: list[str] = []
        for raw in REFERENCE_ZONES:
            zone = CultivationZone.from_dict(raw)
            if tx.get_state(zone_key(zone.zone_id)) is not None:
                continue
            self._put(tx, replace(zone, created_at=tx.timestamp.isoformat()))
            added.append(zone.zone_id)
        logger.info("Seeded zones: %s", added or "none")
        return {"success": True, "added": added}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_zone(self, tx: Transaction, zone_id: str) -> CultivationZone:
        return self._load(tx, zone_id)

    def all_zones(self, tx: Transaction) -> list[CultivationZone]:
        return [CultivationZone.from_dict(v) for _, v in tx.scan_prefix(ZONE_PREFIX)]

    def zones_for_herb(self, tx: Transaction, herb_type: str) -> list[CultivationZone]:
        """Active zones approved for herb_type."""
        return [z for z in self.all_zones(tx) if z.is_active and herb_type in z.herb_types]

    def validate_point(self, tx: Transaction, herb_type: str, point: GeoPoint | dict[str, Any]) -> dict[str, Any]:
        if not isinstance(point, GeoPoint):
            point = GeoPoint.from_dict(point, "gpsCoordinates")

        coordinates = {"latitude": point.latitude, "longitude": point.longitude}
        zones = self.zones_for_herb(tx, herb_type)
        if not zones:
            return {
                "isValid": False,
                "message": f"No active cultivation zones found for herb type: {herb_type}",
                "validZones": [],
                "coordinates": coordinates,
                "herbType": herb_type,
            }

        valid_zones: list[dict[str, Any]] = []
        for zone in zones:
            inside, distance = zone.contains(point)
            if inside:
                valid_zones.append({"zoneId": zone.zone_id, "zoneName": zone.zone_name, "distance": distance})

        is_valid = bool(valid_zones)
        if is_valid:
            message = f"GPS coordinates validated for {herb_type} in {len(valid_zones)} zone(s)"
        else:
            message = f"GPS coordinates not valid for {herb_type} - outside all approved zones"
        logger.debug("validate_point %s %s -> %s", herb_type, coordinates, [z["zoneId"] for z in valid_zones])
        return {
            "isValid": is_valid,
            "message": message,
            "validZones": valid_zones,
            "coordinates": coordinates,
            "herbType": herb_type,
        }
