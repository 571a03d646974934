"""
World-state ledger: versioned key-value store, transactions and commit log.
"""

from .codec import canonical_json, compute_hash, decode_value, encode_value, new_tx_id, prefix_range
from .events import CommitRecord
from .store import WorldState
from .transaction import Transaction

__all__ = [
    "CommitRecord",
    "Transaction",
    "WorldState",
    "canonical_json",
    "compute_hash",
    "decode_value",
    "encode_value",
    "new_tx_id",
    "prefix_range",
]
