"""
Typed quality test payloads and their validation outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import ValidationError
from ..schema import (
    check_keys,
    opt_bool,
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
from .labs import TEST_TYPES

TEST_RESULTS = ("Pass", "Fail", "Conditional-Pass")

HEAVY_METAL_FIELDS = ("lead", "mercury", "cadmium", "arsenic")
MICROBIAL_FIELDS = ("totalBacterialCount", "yeastMoldCount", "enterobacteria", "salmonella", "ecoli")

TEST_PREFIX = "TEST~"
TEST_HISTORY_PREFIX = "TESTHIST~"


def quality_test_key(test_id: str) -> str:
    return f"{TEST_PREFIX}{test_id}"


def test_history_key(batch_id: str) -> str:
    return f"{TEST_HISTORY_PREFIX}{batch_id}"


@dataclass(frozen=True)
class PesticideResidue:
    pesticide_name: str
    concentration: float  # ppm
    mrl: float  # ppm
    status: str  # Pass | Fail

    @classmethod
    def from_dict(cls, data: Any, path: str) -> PesticideResidue:
        data = require_mapping(data, path)
        check_keys(data, ("pesticideName", "concentration", "mrl", "status"), path)
        return cls(
            pesticide_name=req_str(data, "pesticideName", path),
            concentration=req_number(data, "concentration", path, ge=0),
            mrl=req_number(data, "mrl", path, ge=0),
            status=req_choice(data, "status", ("Pass", "Fail"), path),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pesticideName": self.pesticide_name,
            "concentration": self.concentration,
            "mrl": self.mrl,
            "status": self.status,
        }


@dataclass(frozen=True)
class DnaAuthenticity:
    species_confirmed: bool
    genetic_markers: list[str] = field(default_factory=list)
    dna_match_percentage: float | None = None
    contamination_detected: bool | None = None

    @classmethod
    def from_dict(cls, data: Any, path: str) -> DnaAuthenticity:
        data = require_mapping(data, path)
        check_keys(data, ("speciesConfirmed", "geneticMarkers", "dnaMatchPercentage", "contaminationDetected"), path)
        confirmed = opt_bool(data, "speciesConfirmed", path)
        if confirmed is None:
            raise ValidationError("is required", path=f"{path}.speciesConfirmed")
        return cls(
            species_confirmed=confirmed,
            genetic_markers=str_list(data, "geneticMarkers", path),
            dna_match_percentage=opt_number(data, "dnaMatchPercentage", path, ge=0, le=100),
            contamination_detected=opt_bool(data, "contaminationDetected", path),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"speciesConfirmed": self.species_confirmed}
        if self.genetic_markers:
            result["geneticMarkers"] = list(self.genetic_markers)
        if self.dna_match_percentage is not None:
            result["dnaMatchPercentage"] = self.dna_match_percentage
        if self.contamination_detected is not None:
            result["contaminationDetected"] = self.contamination_detected
        return result


def _number_map(data: dict[str, Any], key: str, path: str, allowed: tuple[str, ...] | None = None) -> dict[str, float] | None:
    raw = opt_mapping(data, key, path)
    if raw is None:
        return None
    sub = f"{path}.{key}" if path else key
    if allowed is not None:
        check_keys(raw, allowed, sub)
    return {name: req_number(raw, name, sub, ge=0) for name in raw if raw[name] is not None}


@dataclass(frozen=True)
class QualityTestPayload:
    """A lab's submission. ``overallResult`` from the lab is ignored and recomputed."""

    test_id: str
    batch_id: str
    lab_id: str
    lab_name: str
    lab_certification: str
    test_type: str
    test_date: str
    sample_id: str
    sample_quantity: float  # grams
    tester_id: str
    herb_type: str | None = None
    moisture_content: float | None = None
    ash_content: float | None = None
    foreign_matter: float | None = None
    active_principles: dict[str, float] | None = None
    heavy_metals: dict[str, float] | None = None
    pesticide_residues: list[PesticideResidue] | None = None
    microbial_count: dict[str, Any] | None = None
    dna_authenticity: DnaAuthenticity | None = None
    test_results: dict[str, Any] | None = None
    remarks: str | None = None
    test_methodology: str | None = None
    digital_signature: str | None = None

    FIELDS = (
        "testId",
        "batchId",
        "labId",
        "labName",
        "labCertification",
        "testType",
        "testDate",
        "sampleId",
        "sampleQuantity",
        "testerId",
        "herbType",
        "moistureContent",
        "ashContent",
        "foreignMatter",
        "activePrinciples",
        "heavyMetals",
        "pesticideResidues",
        "microbialCount",
        "dnaAuthenticity",
        "overallResult",
        "testResults",
        "remarks",
        "testMethodology",
        "digitalSignature",
    )

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> QualityTestPayload:
        data = require_mapping(data, path)
        check_keys(data, cls.FIELDS, path)

        if data.get("overallResult") is not None:
            req_choice(data, "overallResult", TEST_RESULTS, path)

        test_date = req_str(data, "testDate", path)
        parse_datetime(test_date, f"{path}.testDate" if path else "testDate")

        residues = None
        raw_residues = data.get("pesticideResidues")
        if raw_residues is not None:
            if not isinstance(raw_residues, list):
                raise ValidationError("must be a list", path="pesticideResidues")
            residues = [PesticideResidue.from_dict(r, f"pesticideResidues[{i}]") for i, r in enumerate(raw_residues)]

        microbial = None
        raw_microbial = opt_mapping(data, "microbialCount", path)
        if raw_microbial is not None:
            check_keys(raw_microbial, MICROBIAL_FIELDS, "microbialCount")
            microbial = {}
            for name, value in raw_microbial.items():
                if value is None:
                    continue
                if name == "salmonella":
                    microbial[name] = req_choice(raw_microbial, name, ("Absent", "Present"), "microbialCount")
                else:
                    microbial[name] = req_number(raw_microbial, name, "microbialCount", ge=0)

        dna_raw = data.get("dnaAuthenticity")

        return cls(
            test_id=req_str(data, "testId", path),
            batch_id=req_str(data, "batchId", path),
            lab_id=req_str(data, "labId", path),
            lab_name=req_str(data, "labName", path),
            lab_certification=req_str(data, "labCertification", path),
            test_type=req_choice(data, "testType", TEST_TYPES, path),
            test_date=test_date,
            sample_id=req_str(data, "sampleId", path),
            sample_quantity=req_number(data, "sampleQuantity", path, gt=0),
            tester_id=req_str(data, "testerId", path),
            herb_type=opt_str(data, "herbType", path),
            moisture_content=opt_number(data, "moistureContent", path, ge=0, le=100),
            ash_content=opt_number(data, "ashContent", path, ge=0, le=100),
            foreign_matter=opt_number(data, "foreignMatter", path, ge=0, le=100),
            active_principles=_number_map(data, "activePrinciples", path),
            heavy_metals=_number_map(data, "heavyMetals", path, HEAVY_METAL_FIELDS),
            pesticide_residues=residues,
            microbial_count=microbial,
            dna_authenticity=DnaAuthenticity.from_dict(dna_raw, "dnaAuthenticity") if dna_raw is not None else None,
            test_results=opt_mapping(data, "testResults", path),
            remarks=opt_str(data, "remarks", path),
            test_methodology=opt_str(data, "testMethodology", path),
            digital_signature=opt_str(data, "digitalSignature", path),
        )

    @property
    def tested_at(self) -> datetime:
        return parse_datetime(self.test_date, "testDate")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "testId": self.test_id,
            "batchId": self.batch_id,
            "labId": self.lab_id,
            "labName": self.lab_name,
            "labCertification": self.lab_certification,
            "testType": self.test_type,
            "testDate": self.test_date,
            "sampleId": self.sample_id,
            "sampleQuantity": self.sample_quantity,
            "testerId": self.tester_id,
        }
        optional = {
            "herbType": self.herb_type,
            "moistureContent": self.moisture_content,
            "ashContent": self.ash_content,
            "foreignMatter": self.foreign_matter,
            "activePrinciples": self.active_principles,
            "heavyMetals": self.heavy_metals,
            "microbialCount": self.microbial_count,
            "testResults": self.test_results,
            "remarks": self.remarks,
            "testMethodology": self.test_methodology,
            "digitalSignature": self.digital_signature,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        if self.pesticide_residues is not None:
            result["pesticideResidues"] = [p.to_dict() for p in self.pesticide_residues]
        if self.dna_authenticity is not None:
            result["dnaAuthenticity"] = self.dna_authenticity.to_dict()
        return result


@dataclass
class ValidationResult:
    herb_type: str
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    passed_tests: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def overall_result(self) -> str:
        if self.violations:
            return "Fail"
        if self.warnings:
            return "Conditional-Pass"
        return "Pass"

    @property
    def overall_score(self) -> int:
        if self.violations:
            return 0
        return 85 if self.warnings else 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "violations": list(self.violations),
            "warnings": list(self.warnings),
            "passedTests": list(self.passed_tests),
            "herbType": self.herb_type,
            "overallScore": self.overall_score,
        }
