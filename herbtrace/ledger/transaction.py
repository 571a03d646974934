"""
A single unit of work against the world state.

Reads record the version they observed; writes are buffered until commit.
Reads see the transaction's own buffered writes. Range scans record the key
set and versions they observed so that phantom inserts are caught at commit.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..errors import ValidationError
from .codec import decode_value, encode_value, prefix_range

if TYPE_CHECKING:
    from ..auth import Identity
    from .events import CommitRecord
    from .store import WorldState


class Transaction:
    """
    Buffered read-modify-write over a WorldState.

    Usable as a context manager: commits on clean exit, discards on error.
    """

    def __init__(
        self,
        state: WorldState,
        identity: Identity,
        *,
        tx_id: str,
        timestamp: datetime,
        function: str = "",
    ):
        self.state = state
        self.identity = identity
        self.tx_id = tx_id
        self.timestamp = timestamp
        self.function = function

        self._reads: dict[str, int] = {}
        self._scans: list[tuple[str, str, dict[str, int]]] = []
        self._writes: dict[str, bytes] = {}
        self._closed = False
        self.record: CommitRecord | None = None

    # -------------------------------------------------------------------------
    # Raw access
    # -------------------------------------------------------------------------

    def get_state(self, key: str) -> bytes | None:
        if key in self._writes:
            return self._writes[key]
        value, version = self.state.get_versioned(key)
        self._reads.setdefault(key, version)
        return value

    def put_state(self, key: str, value: bytes) -> None:
        if not key:
            raise ValidationError("key must be non-empty")
        if self._closed:
            raise RuntimeError(f"Transaction {self.tx_id} is closed")
        try:
            value.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("value must be UTF-8 encoded", path=key) from None
        self._writes[key] = value

    def range_scan(self, start_key: str, end_key: str) -> list[tuple[str, bytes]]:
        """(key, value) pairs in [start_key, end_key), merged with buffered writes."""
        rows = self.state.range_scan(start_key, end_key)
        self._scans.append((start_key, end_key, {k: v for k, _, v in rows}))

        merged = {k: value for k, value, _ in rows}
        for key, value in self._writes.items():
            if key >= start_key and (not end_key or key < end_key):
                merged[key] = value
        return sorted(merged.items())

    # -------------------------------------------------------------------------
    # JSON helpers
    # -------------------------------------------------------------------------

    def get_json(self, key: str) -> Any | None:
        raw = self.get_state(key)
        return None if raw is None else decode_value(raw)

    def put_json(self, key: str, value: Any) -> None:
        self.put_state(key, encode_value(value))

    def scan_prefix(self, prefix: str) -> list[tuple[str, Any]]:
        start, end = prefix_range(prefix)
        return [(k, decode_value(v)) for k, v in self.range_scan(start, end)]

    # -------------------------------------------------------------------------
    # Commit bookkeeping
    # -------------------------------------------------------------------------

    def read_set(self) -> dict[str, int]:
        return dict(self._reads)

    def scanned_ranges(self) -> list[tuple[str, str, dict[str, int]]]:
        return list(self._scans)

    def pending_writes(self) -> dict[str, bytes]:
        return dict(self._writes)

    def commit(self) -> CommitRecord | None:
        if self._closed:
            raise RuntimeError(f"Transaction {self.tx_id} is closed")
        try:
            self.record = self.state.commit(self)
        finally:
            self._closed = True
        return self.record

    def discard(self) -> None:
        self._writes.clear()
        self._closed = True

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._closed:
            return
        if exc_type is None:
            self.commit()
        else:
            self.discard()
