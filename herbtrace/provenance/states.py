"""
Batch lifecycle states.

Collected -> In-Processing -> Quality-Testing -> Tested-Pass | Tested-Fail
Tested-Pass -> Packaged -> Distributed | Recalled
"""

from __future__ import annotations

from enum import Enum


class BatchStatus(str, Enum):
    COLLECTED = "Collected"
    IN_PROCESSING = "In-Processing"
    QUALITY_TESTING = "Quality-Testing"  # also the outcome of a Conditional-Pass test
    TESTED_PASS = "Tested-Pass"
    TESTED_FAIL = "Tested-Fail"  # not terminal: re-testing is allowed
    PACKAGED = "Packaged"
    DISTRIBUTED = "Distributed"
    RECALLED = "Recalled"


TERMINAL = frozenset({BatchStatus.DISTRIBUTED, BatchStatus.RECALLED})

DISTRIBUTION_STATUSES = (BatchStatus.PACKAGED, BatchStatus.DISTRIBUTED, BatchStatus.RECALLED)

# Statuses from which processing steps and test results may still be appended
APPENDABLE = frozenset(
    {
        BatchStatus.COLLECTED,
        BatchStatus.IN_PROCESSING,
        BatchStatus.QUALITY_TESTING,
        BatchStatus.TESTED_PASS,
        BatchStatus.TESTED_FAIL,
    }
)

_RESULT_STATUS = {
    "Pass": BatchStatus.TESTED_PASS,
    "Fail": BatchStatus.TESTED_FAIL,
    "Conditional-Pass": BatchStatus.QUALITY_TESTING,
}


def status_for_test_result(overall_result: str) -> BatchStatus:
    return _RESULT_STATUS.get(overall_result, BatchStatus.QUALITY_TESTING)
