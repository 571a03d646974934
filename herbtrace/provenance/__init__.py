"""
Provenance state machine: the authoritative per-batch record.
"""

from .machine import ProvenanceStateMachine
from .records import CollectionEvent, DistributionInfo, ProcessingStep
from .reports import build_timeline, completion_score
from .states import TERMINAL, BatchStatus

__all__ = [
    "TERMINAL",
    "BatchStatus",
    "CollectionEvent",
    "DistributionInfo",
    "ProcessingStep",
    "ProvenanceStateMachine",
    "build_timeline",
    "completion_score",
]
