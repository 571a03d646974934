"""
Laboratory certifications and test-scope checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..errors import ValidationError
from ..schema import check_keys, opt_bool, opt_str, parse_date, req_str, require_mapping, str_list

TEST_TYPES = ("Physical", "Chemical", "Microbiological", "DNA", "Pesticide-Residue")

LAB_PREFIX = "LAB~"


def lab_key(lab_id: str) -> str:
    return f"{LAB_PREFIX}{lab_id}"


@dataclass(frozen=True)
class LabCertification:
    lab_id: str
    lab_name: str
    certification: str
    accreditation_number: str | None = None
    valid_until: date | None = None
    test_capabilities: list[str] = field(default_factory=list)
    is_active: bool = True
    registered_at: str | None = None

    FIELDS = (
        "labId",
        "labName",
        "certification",
        "accreditationNumber",
        "validUntil",
        "testCapabilities",
        "isActive",
        "registeredAt",
    )

    @classmethod
    def from_dict(cls, data: Any, path: str = "lab") -> LabCertification:
        data = require_mapping(data, path)
        check_keys(data, cls.FIELDS, path)
        capabilities = str_list(data, "testCapabilities", path)
        bad = [c for c in capabilities if c not in TEST_TYPES]
        if bad:
            raise ValidationError(f"unknown test type(s): {', '.join(bad)}", path=f"{path}.testCapabilities")
        valid_until = data.get("validUntil")
        active = opt_bool(data, "isActive", path)
        return cls(
            lab_id=req_str(data, "labId", path),
            lab_name=req_str(data, "labName", path),
            certification=req_str(data, "certification", path),
            accreditation_number=opt_str(data, "accreditationNumber", path),
            valid_until=parse_date(valid_until, f"{path}.validUntil") if valid_until is not None else None,
            test_capabilities=capabilities,
            is_active=True if active is None else active,
            registered_at=opt_str(data, "registeredAt", path),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "labId": self.lab_id,
            "labName": self.lab_name,
            "certification": self.certification,
            "testCapabilities": list(self.test_capabilities),
            "isActive": self.is_active,
        }
        if self.accreditation_number:
            result["accreditationNumber"] = self.accreditation_number
        if self.valid_until is not None:
            result["validUntil"] = self.valid_until.isoformat()
        if self.registered_at:
            result["registeredAt"] = self.registered_at
        return result

    def scope_problem(self, test_type: str, on: date) -> str | None:
        """Why this lab may not submit test_type on the given day, or None."""
        if not self.is_active:
            return f"Lab {self.lab_id} certification is inactive"
        if self.valid_until is not None and self.valid_until < on:
            return f"Lab {self.lab_id} certification expired on {self.valid_until.isoformat()}"
        if test_type not in self.test_capabilities:
            return f"Lab {self.lab_id} is not certified for {test_type} testing"
        return None


SEED_LABS: list[dict[str, Any]] = [
    {
        "labId": "LAB001",
        "labName": "Ayurveda Research Institute Lab",
        "certification": "NABL-ISO17025",
        "accreditationNumber": "TC-1234",
        "validUntil": "2027-12-31",
        "testCapabilities": list(TEST_TYPES),
    },
    {
        "labId": "LAB002",
        "labName": "Herbal Quality Control Lab",
        "certification": "NABL-ISO17025",
        "accreditationNumber": "TC-5678",
        "validUntil": "2027-12-31",
        "testCapabilities": ["Physical", "Chemical", "Pesticide-Residue"],
    },
]
