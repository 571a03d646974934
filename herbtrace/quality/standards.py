"""
Quality standards per herb.

A standard set is data: numeric bounds per parameter plus microbial limits
that may be the literal "Absent". Evaluation lives in ``rules.py``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import ValidationError
from ..schema import check_keys, opt_number, opt_str, req_number, require_mapping

DEFAULT_HERB = "default"
ABSENT = "Absent"

STANDARDS_PREFIX = "STANDARDS~"


def standards_key(herb_type: str) -> str:
    return f"{STANDARDS_PREFIX}{herb_type}"


@dataclass(frozen=True)
class Bound:
    min: float | None = None
    max: float | None = None
    unit: str = ""

    @classmethod
    def from_dict(cls, data: Any, path: str) -> Bound:
        data = require_mapping(data, path)
        check_keys(data, ("min", "max", "unit"), path)
        bound = cls(
            min=opt_number(data, "min", path),
            max=opt_number(data, "max", path),
            unit=opt_str(data, "unit", path) or "",
        )
        if bound.min is None and bound.max is None:
            raise ValidationError("bound needs min or max", path=path)
        if bound.min is not None and bound.max is not None and bound.min > bound.max:
            raise ValidationError("min must not exceed max", path=path)
        return bound

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.min is not None:
            result["min"] = self.min
        if self.max is not None:
            result["max"] = self.max
        if self.unit:
            result["unit"] = self.unit
        return result

    def above(self, value: float) -> bool:
        return self.max is not None and value > self.max

    def below(self, value: float) -> bool:
        return self.min is not None and value < self.min


MicrobialLimit = Bound | str


@dataclass(frozen=True)
class QualityStandardSet:
    herb_type: str
    moisture: Bound | None = None
    ash: Bound | None = None
    foreign_matter: Bound | None = None
    active_principles: dict[str, Bound] = field(default_factory=dict)
    heavy_metals: dict[str, Bound] = field(default_factory=dict)
    microbial_limits: dict[str, MicrobialLimit] = field(default_factory=dict)
    pesticide_limits: dict[str, float] = field(default_factory=dict)  # name -> MRL ppm
    dna_match_threshold: float | None = None

    FIELDS = (
        "moisture",
        "ash",
        "foreignMatter",
        "activePrinciples",
        "heavyMetals",
        "microbialLimits",
        "pesticideLimits",
        "dnaMatchThreshold",
    )

    @classmethod
    def from_dict(cls, herb_type: str, data: Any, path: str = "standards") -> QualityStandardSet:
        data = require_mapping(data, path)
        check_keys(data, cls.FIELDS, path)

        def bound(key: str) -> Bound | None:
            raw = data.get(key)
            return None if raw is None else Bound.from_dict(raw, f"{path}.{key}")

        def bounds(key: str) -> dict[str, Bound]:
            raw = data.get(key)
            if raw is None:
                return {}
            raw = require_mapping(raw, f"{path}.{key}")
            return {name: Bound.from_dict(v, f"{path}.{key}.{name}") for name, v in raw.items()}

        microbial: dict[str, MicrobialLimit] = {}
        raw_microbial = data.get("microbialLimits")
        if raw_microbial is not None:
            raw_microbial = require_mapping(raw_microbial, f"{path}.microbialLimits")
            for name, v in raw_microbial.items():
                if isinstance(v, str):
                    if v != ABSENT:
                        raise ValidationError(f"must be a bound or {ABSENT!r}", path=f"{path}.microbialLimits.{name}")
                    microbial[name] = ABSENT
                else:
                    microbial[name] = Bound.from_dict(v, f"{path}.microbialLimits.{name}")

        pesticides: dict[str, float] = {}
        raw_pesticides = data.get("pesticideLimits")
        if raw_pesticides is not None:
            raw_pesticides = require_mapping(raw_pesticides, f"{path}.pesticideLimits")
            for name in raw_pesticides:
                pesticides[name] = req_number(raw_pesticides, name, f"{path}.pesticideLimits", ge=0)

        return cls(
            herb_type=herb_type,
            moisture=bound("moisture"),
            ash=bound("ash"),
            foreign_matter=bound("foreignMatter"),
            active_principles=bounds("activePrinciples"),
            heavy_metals=bounds("heavyMetals"),
            microbial_limits=microbial,
            pesticide_limits=pesticides,
            dna_match_threshold=opt_number(data, "dnaMatchThreshold", path, ge=0, le=100),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.moisture is not None:
            result["moisture"] = self.moisture.to_dict()
        if self.ash is not None:
            result["ash"] = self.ash.to_dict()
        if self.foreign_matter is not None:
            result["foreignMatter"] = self.foreign_matter.to_dict()
        if self.active_principles:
            result["activePrinciples"] = {k: b.to_dict() for k, b in self.active_principles.items()}
        if self.heavy_metals:
            result["heavyMetals"] = {k: b.to_dict() for k, b in self.heavy_metals.items()}
        if self.microbial_limits:
            result["microbialLimits"] = {
                k: (v if isinstance(v, str) else v.to_dict()) for k, v in self.microbial_limits.items()
            }
        if self.pesticide_limits:
            result["pesticideLimits"] = dict(self.pesticide_limits)
        if self.dna_match_threshold is not None:
            result["dnaMatchThreshold"] = self.dna_match_threshold
        return result

    def active_principle(self, name: str) -> Bound | None:
        """Bound for an active principle, matched case-insensitively."""
        wanted = name.lower()
        for key, value in self.active_principles.items():
            if key.lower() == wanted:
                return value
        return None


_HEAVY_METALS = {
    "lead": {"max": 10, "unit": "ppm"},
    "mercury": {"max": 1, "unit": "ppm"},
    "cadmium": {"max": 0.3, "unit": "ppm"},
    "arsenic": {"max": 3, "unit": "ppm"},
}

_MICROBIAL = {
    "totalBacterialCount": {"max": 100000, "unit": "CFU/g"},
    "yeastMoldCount": {"max": 1000, "unit": "CFU/g"},
    "salmonella": ABSENT,
    "ecoli": {"max": 10, "unit": "CFU/g"},
}

DEFAULT_STANDARDS: dict[str, dict[str, Any]] = {
    "Ashwagandha": {
        "moisture": {"max": 12, "unit": "%"},
        "ash": {"max": 8, "unit": "%"},
        "foreignMatter": {"max": 2, "unit": "%"},
        "activePrinciples": {"withanolides": {"min": 0.3, "unit": "%"}},
        "heavyMetals": _HEAVY_METALS,
        "microbialLimits": _MICROBIAL,
    },
    "Turmeric": {
        "moisture": {"max": 10, "unit": "%"},
        "ash": {"max": 9, "unit": "%"},
        "foreignMatter": {"max": 1, "unit": "%"},
        "activePrinciples": {"curcumin": {"min": 2.0, "unit": "%"}},
        "heavyMetals": _HEAVY_METALS,
        "microbialLimits": _MICROBIAL,
    },
    DEFAULT_HERB: {
        "moisture": {"max": 15, "unit": "%"},
        "ash": {"max": 10, "unit": "%"},
        "foreignMatter": {"max": 3, "unit": "%"},
        "heavyMetals": _HEAVY_METALS,
        "microbialLimits": _MICROBIAL,
    },
}


def builtin_standards(herb_type: str) -> QualityStandardSet:
    name = herb_type if herb_type in DEFAULT_STANDARDS else DEFAULT_HERB
    return QualityStandardSet.from_dict(name, DEFAULT_STANDARDS[name])
