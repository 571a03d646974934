"""
Category checks: a test payload against a standard set.

Standards are data, checks are code. Each check appends to the shared
ValidationResult; they run in registration order. A parameter the lab did not
report is never a violation.
"""

from __future__ import annotations

from typing import Callable

from .records import QualityTestPayload, ValidationResult
from .standards import ABSENT, QualityStandardSet

CheckFn = Callable[[QualityTestPayload, QualityStandardSet, ValidationResult, float], None]

CHECKS: dict[str, CheckFn] = {}


def check(name: str) -> Callable[[CheckFn], CheckFn]:
    def decorator(fn: CheckFn) -> CheckFn:
        CHECKS[name] = fn
        return fn

    return decorator


def _fmt(value: float) -> str:
    return f"{value:g}"


@check("physical")
def check_physical(test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, _threshold: float) -> None:
    for label, value, bound in (
        ("Moisture content", test.moisture_content, std.moisture),
        ("Ash content", test.ash_content, std.ash),
        ("Foreign matter", test.foreign_matter, std.foreign_matter),
    ):
        if value is None:
            continue
        if bound is not None and bound.above(value):
            out.violations.append(f"{label} {_fmt(value)}% exceeds maximum {_fmt(bound.max)}%")  # type: ignore[arg-type]
        elif bound is not None and bound.below(value):
            out.violations.append(f"{label} {_fmt(value)}% below minimum {_fmt(bound.min)}%")  # type: ignore[arg-type]
        else:
            out.passed_tests.append(f"{label}: {_fmt(value)}%")


@check("active-principles")
def check_active_principles(
    test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, _threshold: float
) -> None:
    for name, concentration in (test.active_principles or {}).items():
        bound = std.active_principle(name)
        if bound is None:
            continue
        if bound.below(concentration):
            out.violations.append(f"{name} concentration {_fmt(concentration)}% below minimum {_fmt(bound.min)}%")  # type: ignore[arg-type]
        elif bound.above(concentration):
            out.violations.append(f"{name} concentration {_fmt(concentration)}% exceeds maximum {_fmt(bound.max)}%")  # type: ignore[arg-type]
        else:
            out.passed_tests.append(f"{name}: {_fmt(concentration)}%")


@check("heavy-metals")
def check_heavy_metals(test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, _threshold: float) -> None:
    for metal, concentration in (test.heavy_metals or {}).items():
        bound = std.heavy_metals.get(metal)
        if bound is None:
            continue
        if bound.above(concentration):
            out.violations.append(f"{metal} concentration {_fmt(concentration)}ppm exceeds maximum {_fmt(bound.max)}ppm")  # type: ignore[arg-type]
        else:
            out.passed_tests.append(f"{metal}: {_fmt(concentration)}ppm")


@check("pesticide-residues")
def check_pesticides(test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, _threshold: float) -> None:
    for residue in test.pesticide_residues or []:
        mrl = residue.mrl
        limit = std.pesticide_limits.get(residue.pesticide_name)
        if limit is not None:
            mrl = min(mrl, limit)
        if residue.status == "Fail" or residue.concentration > mrl:
            out.violations.append(
                f"{residue.pesticide_name}: {_fmt(residue.concentration)}ppm exceeds MRL {_fmt(mrl)}ppm"
            )
        else:
            out.passed_tests.append(f"{residue.pesticide_name}: {_fmt(residue.concentration)}ppm")


@check("microbial")
def check_microbial(test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, _threshold: float) -> None:
    for microbe, count in (test.microbial_count or {}).items():
        limit = std.microbial_limits.get(microbe)
        if limit is None:
            continue
        if isinstance(limit, str):
            if count not in (ABSENT, 0):
                out.violations.append(f"{microbe} must be absent but found: {count}")
            else:
                out.passed_tests.append(f"{microbe}: {count}")
            continue
        if isinstance(count, str):
            if count != ABSENT:
                out.violations.append(f"{microbe} detected: {count}")
            else:
                out.passed_tests.append(f"{microbe}: {count}")
        elif limit.above(count):
            out.violations.append(f"{microbe} count {_fmt(count)} exceeds maximum {_fmt(limit.max)} {limit.unit}".rstrip())  # type: ignore[arg-type]
        else:
            out.passed_tests.append(f"{microbe}: {_fmt(count)}")


@check("dna")
def check_dna(test: QualityTestPayload, std: QualityStandardSet, out: ValidationResult, threshold: float) -> None:
    dna = test.dna_authenticity
    if dna is None:
        return
    if not dna.species_confirmed:
        out.violations.append("Species not confirmed by DNA analysis")
    else:
        out.passed_tests.append("DNA species confirmation: Pass")

    match_threshold = std.dna_match_threshold if std.dna_match_threshold is not None else threshold
    if dna.dna_match_percentage is not None and dna.dna_match_percentage < match_threshold:
        out.warnings.append(
            f"DNA match percentage {_fmt(dna.dna_match_percentage)}% is below optimal {_fmt(match_threshold)}%"
        )

    if dna.contamination_detected:
        out.violations.append("DNA contamination detected")


def evaluate(
    test: QualityTestPayload,
    standard: QualityStandardSet,
    *,
    herb_type: str,
    dna_match_threshold: float = 95.0,
) -> ValidationResult:
    result = ValidationResult(herb_type=herb_type)
    for fn in CHECKS.values():
        fn(test, standard, result, dna_match_threshold)
    return result
