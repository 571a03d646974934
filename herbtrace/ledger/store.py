"""
Versioned key-value world state with optimistic commit validation.

The store stands in for the host ledger platform: it exposes get / put /
range_scan over UTF-8 JSON values and validates each transaction's read set at
commit time. If any key the transaction read (or any range it scanned) changed
since the read, the commit is refused and nothing is written.

When a ledger directory is given, every commit is appended as one line to
``commits.jsonl`` and the state is rebuilt by replaying that log on first use.
"""

from __future__ import annotations

import bisect
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from ..errors import WriteConflictError
from .codec import new_tx_id
from .events import CommitRecord

if TYPE_CHECKING:
    from ..auth import Identity
    from .transaction import Transaction

logger = logging.getLogger(__name__)


class WorldState:
    """
    Shared key-value world state.

    INVARIANT: the commit log is append-only; commit() is the only write path.
    """

    def __init__(self, ledger_dir: Path | None = None):
        """
        Initialize world state.

        Args:
            ledger_dir: Directory holding commits.jsonl, or None for in-memory only
        """
        self.ledger_dir = ledger_dir
        self.log_path = ledger_dir / "commits.jsonl" if ledger_dir is not None else None

        self._values: dict[str, bytes] = {}
        self._versions: dict[str, int] = {}  # key -> height of last write
        self._sorted_keys: list[str] = []
        self._height = 0
        self._lock = threading.RLock()
        self._loaded = False

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        """Replay the commit log on first use. Idempotent."""
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            for record in self.iter_commits():
                self._apply(record.version, {k: v.encode("utf-8") for k, v in record.writes.items()})
            self._loaded = True
            if self._height:
                logger.debug("Replayed %d commits from %s", self._height, self.log_path)

    def iter_commits(self) -> Iterator[CommitRecord]:
        """Iterate committed transactions in log order."""
        if self.log_path is None or not self.log_path.exists():
            return
        with self.log_path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield CommitRecord.from_json(line)

    def _apply(self, version: int, writes: dict[str, bytes]) -> None:
        for key, value in writes.items():
            if key not in self._values:
                bisect.insort(self._sorted_keys, key)
            self._values[key] = value
            self._versions[key] = version
        self._height = version

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def height(self) -> int:
        """Number of commits applied so far."""
        self._ensure_loaded()
        return self._height

    def get(self, key: str) -> bytes | None:
        self._ensure_loaded()
        return self._values.get(key)

    def get_versioned(self, key: str) -> tuple[bytes | None, int]:
        """Value and version of a key; absent keys have version 0."""
        self._ensure_loaded()
        with self._lock:
            return self._values.get(key), self._versions.get(key, 0)

    def range_scan(self, start_key: str, end_key: str) -> list[tuple[str, bytes, int]]:
        """
        All (key, value, version) with start_key <= key < end_key, in key order.

        An empty end_key means "to the end of the keyspace".
        """
        self._ensure_loaded()
        with self._lock:
            lo = bisect.bisect_left(self._sorted_keys, start_key)
            hi = len(self._sorted_keys) if not end_key else bisect.bisect_left(self._sorted_keys, end_key)
            return [(k, self._values[k], self._versions[k]) for k in self._sorted_keys[lo:hi]]

    def keys(self) -> list[str]:
        self._ensure_loaded()
        return list(self._sorted_keys)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def begin(
        self,
        identity: Identity,
        *,
        function: str = "",
        timestamp: datetime | None = None,
    ) -> Transaction:
        """Open a transaction against the current state."""
        from .transaction import Transaction

        self._ensure_loaded()
        ts = timestamp or datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return Transaction(
            self,
            identity,
            tx_id=new_tx_id(timestamp_ms=int(ts.timestamp() * 1000)),
            timestamp=ts,
            function=function,
        )

    def commit(self, tx: Transaction) -> CommitRecord | None:
        """
        Validate tx's read set and apply its writes atomically.

        Returns the CommitRecord, or None for a transaction with no writes.

        Raises:
            WriteConflictError: a read key or scanned range changed since it was read
        """
        self._ensure_loaded()
        with self._lock:
            stale = self._stale_keys(tx)
            if stale:
                logger.warning("Commit of %s (%s) refused; stale keys: %s", tx.tx_id, tx.function, stale)
                raise WriteConflictError(tx.tx_id, stale)

            writes = tx.pending_writes()
            if not writes:
                return None

            record = CommitRecord(
                tx_id=tx.tx_id,
                version=self._height + 1,
                timestamp=tx.timestamp,
                actor=tx.identity.actor,
                function=tx.function,
                writes={k: v.decode("utf-8") for k, v in writes.items()},
            )
            if self.log_path is not None:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with self.log_path.open("a", encoding="utf-8") as f:
                    f.write(record.to_json() + "\n")
            self._apply(record.version, writes)

        logger.debug("Committed %s (%s) at version %d: %s", tx.tx_id, tx.function, record.version, record.keys())
        return record

    def _stale_keys(self, tx: Transaction) -> list[str]:
        stale: list[str] = []
        for key, seen_version in tx.read_set().items():
            if self._versions.get(key, 0) != seen_version:
                stale.append(key)
        for start_key, end_key, seen in tx.scanned_ranges():
            current = {k: v for k, _, v in self.range_scan(start_key, end_key)}
            if current != seen:
                changed = sorted(set(current) ^ set(seen) | {k for k in current if seen.get(k) != current[k]})
                stale.extend(k for k in changed if k not in stale)
        return stale
