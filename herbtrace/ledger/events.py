"""
Immutable commit records for the world-state log.

Each line in commits.jsonl is one committed transaction. Current world state is
computed by replaying commits in order, never by editing prior lines.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CommitRecord:
    """
    One committed transaction.

    ``writes`` maps key -> canonical JSON text of the new value.
    """

    tx_id: str
    version: int  # world-state height after this commit
    timestamp: datetime
    actor: str  # "regulator:REG-01", "lab:LAB001", ...
    function: str = ""  # operation name, e.g. "submitTest"
    writes: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.version <= 0:
            raise ValueError(f"Invalid commit version: {self.version}")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "tx_id": self.tx_id,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "writes": self.writes,
        }
        if self.function:
            result["function"] = self.function
        return result

    def to_json(self) -> str:
        """Serialize to a single JSON line."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommitRecord:
        return cls(
            tx_id=data["tx_id"],
            version=int(data["version"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            actor=data["actor"],
            function=data.get("function", ""),
            writes=dict(data.get("writes", {})),
        )

    @classmethod
    def from_json(cls, line: str) -> CommitRecord:
        return cls.from_dict(json.loads(line))

    def keys(self) -> list[str]:
        return sorted(self.writes)
