"""
Error taxonomy for the compliance engine.

Hard structural failures (bad schema, missing record, missing capability,
duplicate id, hash mismatch) are raised. Soft business-rule outcomes from the
validators are returned as ``{"isValid": False, "message": ...}`` dicts and
only become a RuleViolation where a caller turns them into a rejection.

WriteConflictError is the only category a caller is expected to retry.
"""

from __future__ import annotations

from typing import Any


class HerbTraceError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message}


class ValidationError(HerbTraceError, ValueError):
    """Payload failed schema/shape validation."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.path:
            result["path"] = self.path
        return result


class RuleViolation(HerbTraceError):
    """A domain rule rejected the submission."""

    def __init__(
        self,
        message: str,
        *,
        reasons: list[str] | None = None,
        shortfall: float | None = None,
    ):
        super().__init__(message)
        self.reasons = list(reasons) if reasons else [message]
        self.shortfall = shortfall

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reasons"] = self.reasons
        if self.shortfall is not None:
            result["shortfall"] = self.shortfall
        return result


class AuthorizationError(HerbTraceError, PermissionError):
    """Caller does not hold the capability the operation requires."""

    def __init__(self, message: str, *, required: tuple[str, ...] = (), actual: str | None = None):
        super().__init__(message)
        self.required = required
        self.actual = actual


class NotFoundError(HerbTraceError, LookupError):
    """Unknown batch, zone, test, lab, traceability code or quota year."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ConflictError(HerbTraceError):
    """An id that must be unique already exists."""

    def __init__(self, kind: str, identifier: str, *, scope: str | None = None):
        suffix = f" for {scope}" if scope else ""
        super().__init__(f"{kind} {identifier} already exists{suffix}")
        self.kind = kind
        self.identifier = identifier


class IntegrityError(HerbTraceError):
    """Stored content no longer matches its integrity hash."""

    def __init__(self, identifier: str, stored_hash: str | None, calculated_hash: str):
        super().__init__(f"Integrity check failed for {identifier}")
        self.identifier = identifier
        self.stored_hash = stored_hash
        self.calculated_hash = calculated_hash

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["storedHash"] = self.stored_hash
        result["calculatedHash"] = self.calculated_hash
        return result


class WriteConflictError(HerbTraceError):
    """A key read by the transaction changed before it could commit."""

    def __init__(self, tx_id: str, keys: list[str]):
        super().__init__(f"Transaction {tx_id} aborted: read set changed for {', '.join(keys)}")
        self.tx_id = tx_id
        self.keys = keys
