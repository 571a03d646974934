"""
Value encoding for the world state.

Every value on the ledger is canonical JSON (sorted keys, compact separators,
UTF-8). The same serialization feeds the integrity hash, so a hash computed at
write time can be re-derived byte-for-byte from the stored value.
"""

from __future__ import annotations

import hashlib
import json
import os
import time
from typing import Any


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def encode_value(value: Any) -> bytes:
    return canonical_json(value).encode("utf-8")


def decode_value(raw: bytes) -> Any:
    return json.loads(raw.decode("utf-8"))


def compute_hash(content: bytes | str | dict[str, Any]) -> str:
    """
    Hex-encoded sha256 of content.

    Dicts are hashed over their canonical JSON form.
    """
    if isinstance(content, dict):
        content = canonical_json(content)
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def new_tx_id(*, timestamp_ms: int | None = None) -> str:
    """
    Generate a transaction id as a ULID (26 chars, Crockford base32).

    Ids sort by creation time, which keeps the commit log readable.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if not (0 <= timestamp_ms < (1 << 48)):
        raise ValueError("timestamp_ms out of range for ULID")

    value = (timestamp_ms << 80) | int.from_bytes(os.urandom(10), "big")
    chars: list[str] = []
    for _ in range(26):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def prefix_range(prefix: str) -> tuple[str, str]:
    """Half-open key range covering every key that starts with prefix."""
    return prefix, prefix + "\uffff"
