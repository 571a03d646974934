"""
Typed event payloads for the provenance record.

Each payload is parsed from its external camelCase JSON form, rejects unknown
keys, and serializes back with ``to_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import ValidationError
from ..geo import GeoPoint
from ..schema import (
    check_keys,
    opt_mapping,
    opt_number,
    opt_str,
    parse_datetime,
    req_choice,
    req_number,
    req_str,
    require_mapping,
    str_list,
)
from ..zones import SEASONS

COLLECTION_METHODS = ("Hand-picked", "Tool-assisted", "Machine-harvested")
CERTIFICATION_TYPES = ("Organic", "Natural", "Conventional")
PROCESS_TYPES = (
    "Cleaning",
    "Drying",
    "Grinding",
    "Extraction",
    "Purification",
    "Packaging",
    "Sterilization",
    "Quality-Check",
)


def _sub_mapping(
    data: dict[str, Any], key: str, bounds: dict[str, tuple[float | None, float | None]]
) -> dict[str, float] | None:
    """Optional object of numeric readings, each with an optional [lo, hi] range."""
    raw = opt_mapping(data, key, "")
    if raw is None:
        return None
    check_keys(raw, bounds, key)
    return {
        name: req_number(raw, name, key, ge=lo, le=hi)
        for name, (lo, hi) in bounds.items()
        if raw.get(name) is not None
    }


@dataclass(frozen=True)
class CollectionEvent:
    batch_id: str
    farmer_id: str
    farmer_name: str
    herb_type: str
    quantity_kg: float
    collection_date: str
    gps_coordinates: GeoPoint
    harvest_season: str
    collection_method: str
    certification_type: str
    herb_variety: str | None = None
    weather_conditions: dict[str, Any] | None = None
    soil_conditions: dict[str, Any] | None = None
    sustainability_score: float | None = None
    digital_signature: str | None = None

    FIELDS = (
        "batchId",
        "farmerId",
        "farmerName",
        "herbType",
        "herbVariety",
        "quantityKg",
        "collectionDate",
        "gpsCoordinates",
        "harvestSeason",
        "collectionMethod",
        "weatherConditions",
        "soilConditions",
        "certificationType",
        "sustainabilityScore",
        "digitalSignature",
    )

    @classmethod
    def from_dict(cls, data: Any) -> CollectionEvent:
        data = require_mapping(data, "")
        check_keys(data, cls.FIELDS, "")
        collection_date = req_str(data, "collectionDate", "")
        parse_datetime(collection_date, "collectionDate")
        if data.get("gpsCoordinates") is None:
            raise ValidationError("is required", path="gpsCoordinates")
        return cls(
            batch_id=req_str(data, "batchId", ""),
            farmer_id=req_str(data, "farmerId", ""),
            farmer_name=req_str(data, "farmerName", ""),
            herb_type=req_str(data, "herbType", ""),
            herb_variety=opt_str(data, "herbVariety", ""),
            quantity_kg=req_number(data, "quantityKg", "", gt=0),
            collection_date=collection_date,
            gps_coordinates=GeoPoint.from_dict(data["gpsCoordinates"], "gpsCoordinates"),
            harvest_season=req_choice(data, "harvestSeason", SEASONS, ""),
            collection_method=req_choice(data, "collectionMethod", COLLECTION_METHODS, ""),
            weather_conditions=_sub_mapping(
                data,
                "weatherConditions",
                {"temperature": (None, None), "humidity": (0, 100), "rainfall": (0, None)},
            ),
            soil_conditions=_sub_mapping(
                data,
                "soilConditions",
                {"ph": (0, 14), "moisture": (0, 100), "organicContent": (0, 100)},
            ),
            certification_type=req_choice(data, "certificationType", CERTIFICATION_TYPES, ""),
            sustainability_score=opt_number(data, "sustainabilityScore", "", ge=0, le=100),
            digital_signature=opt_str(data, "digitalSignature", ""),
        )

    @property
    def collected_at(self) -> datetime:
        return parse_datetime(self.collection_date, "collectionDate")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "batchId": self.batch_id,
            "farmerId": self.farmer_id,
            "farmerName": self.farmer_name,
            "herbType": self.herb_type,
            "quantityKg": self.quantity_kg,
            "collectionDate": self.collection_date,
            "gpsCoordinates": self.gps_coordinates.to_dict(),
            "harvestSeason": self.harvest_season,
            "collectionMethod": self.collection_method,
            "certificationType": self.certification_type,
        }
        optional = {
            "herbVariety": self.herb_variety,
            "weatherConditions": self.weather_conditions,
            "soilConditions": self.soil_conditions,
            "sustainabilityScore": self.sustainability_score,
            "digitalSignature": self.digital_signature,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass(frozen=True)
class ProcessingStep:
    step_id: str
    batch_id: str
    facility_id: str
    facility_name: str
    process_type: str
    input_quantity_kg: float
    output_quantity_kg: float
    process_start_time: str
    process_end_time: str
    operator_id: str
    process_description: str | None = None
    temperature: float | None = None  # Celsius
    pressure: float | None = None  # bar
    duration: float | None = None  # minutes
    equipment_used: list[str] = field(default_factory=list)
    quality_parameters: dict[str, Any] | None = None
    batch_notes: str | None = None
    digital_signature: str | None = None

    FIELDS = (
        "stepId",
        "batchId",
        "facilityId",
        "facilityName",
        "processType",
        "processDescription",
        "inputQuantityKg",
        "outputQuantityKg",
        "yieldPercentage",
        "processStartTime",
        "processEndTime",
        "temperature",
        "pressure",
        "duration",
        "equipmentUsed",
        "operatorId",
        "qualityParameters",
        "batchNotes",
        "digitalSignature",
    )

    @classmethod
    def from_dict(cls, data: Any) -> ProcessingStep:
        data = require_mapping(data, "")
        check_keys(data, cls.FIELDS, "")
        start = req_str(data, "processStartTime", "")
        end = req_str(data, "processEndTime", "")
        if not parse_datetime(end, "processEndTime") > parse_datetime(start, "processStartTime"):
            raise ValidationError("must be later than processStartTime", path="processEndTime")

        quality = opt_mapping(data, "qualityParameters", "")
        if quality is not None:
            check_keys(quality, ("moisture", "purity", "particleSize", "color", "odor"), "qualityParameters")
            for name in ("moisture", "purity"):
                opt_number(quality, name, "qualityParameters", ge=0, le=100)
            for name in ("particleSize", "color", "odor"):
                opt_str(quality, name, "qualityParameters")
            quality = {k: v for k, v in quality.items() if v is not None}

        return cls(
            step_id=req_str(data, "stepId", ""),
            batch_id=req_str(data, "batchId", ""),
            facility_id=req_str(data, "facilityId", ""),
            facility_name=req_str(data, "facilityName", ""),
            process_type=req_choice(data, "processType", PROCESS_TYPES, ""),
            process_description=opt_str(data, "processDescription", ""),
            input_quantity_kg=req_number(data, "inputQuantityKg", "", gt=0),
            output_quantity_kg=req_number(data, "outputQuantityKg", "", gt=0),
            process_start_time=start,
            process_end_time=end,
            temperature=opt_number(data, "temperature", ""),
            pressure=opt_number(data, "pressure", ""),
            duration=opt_number(data, "duration", "", gt=0),
            equipment_used=str_list(data, "equipmentUsed", ""),
            operator_id=req_str(data, "operatorId", ""),
            quality_parameters=quality,
            batch_notes=opt_str(data, "batchNotes", ""),
            digital_signature=opt_str(data, "digitalSignature", ""),
        )

    @property
    def yield_percentage(self) -> float:
        return self.output_quantity_kg / self.input_quantity_kg * 100

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "stepId": self.step_id,
            "batchId": self.batch_id,
            "facilityId": self.facility_id,
            "facilityName": self.facility_name,
            "processType": self.process_type,
            "inputQuantityKg": self.input_quantity_kg,
            "outputQuantityKg": self.output_quantity_kg,
            "yieldPercentage": round(self.yield_percentage, 4),
            "processStartTime": self.process_start_time,
            "processEndTime": self.process_end_time,
            "operatorId": self.operator_id,
        }
        optional = {
            "processDescription": self.process_description,
            "temperature": self.temperature,
            "pressure": self.pressure,
            "duration": self.duration,
            "qualityParameters": self.quality_parameters,
            "batchNotes": self.batch_notes,
            "digitalSignature": self.digital_signature,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        if self.equipment_used:
            result["equipmentUsed"] = list(self.equipment_used)
        return result


@dataclass(frozen=True)
class DistributionInfo:
    distributor_id: str | None = None
    distributor_name: str | None = None
    expiry_date: str | None = None
    package_type: str | None = None
    package_weight: float | None = None
    batch_lot_number: str | None = None
    destination_address: dict[str, str] | None = None

    FIELDS = (
        "distributorId",
        "distributorName",
        "expiryDate",
        "packageType",
        "packageWeight",
        "batchLotNumber",
        "destinationAddress",
    )
    ADDRESS_FIELDS = ("street", "city", "state", "country", "postalCode")

    @classmethod
    def from_dict(cls, data: Any) -> DistributionInfo:
        data = require_mapping(data, "distributionInfo")
        check_keys(data, cls.FIELDS, "distributionInfo")
        expiry = opt_str(data, "expiryDate", "distributionInfo")
        if expiry is not None:
            parse_datetime(expiry, "distributionInfo.expiryDate")

        address = opt_mapping(data, "destinationAddress", "distributionInfo")
        if address is not None:
            apath = "distributionInfo.destinationAddress"
            check_keys(address, cls.ADDRESS_FIELDS, apath)
            address = {k: opt_str(address, k, apath) for k in cls.ADDRESS_FIELDS if address.get(k) is not None}  # type: ignore[misc]

        return cls(
            distributor_id=opt_str(data, "distributorId", "distributionInfo"),
            distributor_name=opt_str(data, "distributorName", "distributionInfo"),
            expiry_date=expiry,
            package_type=opt_str(data, "packageType", "distributionInfo"),
            package_weight=opt_number(data, "packageWeight", "distributionInfo", gt=0),
            batch_lot_number=opt_str(data, "batchLotNumber", "distributionInfo"),
            destination_address=address,
        )

    def to_dict(self) -> dict[str, Any]:
        values = {
            "distributorId": self.distributor_id,
            "distributorName": self.distributor_name,
            "expiryDate": self.expiry_date,
            "packageType": self.package_type,
            "packageWeight": self.package_weight,
            "batchLotNumber": self.batch_lot_number,
            "destinationAddress": self.destination_address,
        }
        return {k: v for k, v in values.items() if v is not None}
