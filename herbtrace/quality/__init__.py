"""
Quality rule validation: herb standards, lab certifications, test records.
"""

from .labs import TEST_TYPES, LabCertification
from .records import QualityTestPayload, ValidationResult
from .rules import CHECKS, evaluate
from .service import QualityValidator
from .standards import DEFAULT_STANDARDS, Bound, QualityStandardSet

__all__ = [
    "CHECKS",
    "DEFAULT_STANDARDS",
    "TEST_TYPES",
    "Bound",
    "LabCertification",
    "QualityStandardSet",
    "QualityTestPayload",
    "QualityValidator",
    "ValidationResult",
    "evaluate",
]
