"""
Caller identity and capability checks.

Every mutating operation declares the capabilities allowed to call it with the
``@requires`` decorator. The check runs before any state is touched.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .errors import AuthorizationError

if TYPE_CHECKING:
    from .ledger.transaction import Transaction

logger = logging.getLogger(__name__)

REGULATOR = "regulator"
LAB = "lab"
FARMER = "farmer"
PROCESSOR = "processor"
DISTRIBUTOR = "distributor"

CAPABILITIES = frozenset({REGULATOR, LAB, FARMER, PROCESSOR, DISTRIBUTOR})

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Identity:
    """Authenticated caller: member id plus capability label."""

    member_id: str
    capability: str

    def __post_init__(self) -> None:
        if not self.member_id:
            raise ValueError("member_id is required")
        if self.capability not in CAPABILITIES:
            raise ValueError(
                f"Unknown capability: {self.capability!r} (expected one of {', '.join(sorted(CAPABILITIES))})"
            )

    @property
    def actor(self) -> str:
        return f"{self.capability}:{self.member_id}"


def require_capability(tx: Transaction, *capabilities: str) -> None:
    actual = tx.identity.capability
    if actual not in capabilities:
        logger.warning("Denied %s for %s (requires %s)", tx.function or "operation", tx.identity.actor, capabilities)
        raise AuthorizationError(
            f"{tx.function or 'operation'} requires capability {' or '.join(capabilities)}, caller has {actual}",
            required=tuple(capabilities),
            actual=actual,
        )


def requires(*capabilities: str) -> Callable[[F], F]:
    """Guard a ``(self, tx, ...)`` method with a capability check."""
    unknown = set(capabilities) - CAPABILITIES
    if unknown:
        raise ValueError(f"Unknown capabilities: {sorted(unknown)}")

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, tx: Transaction, *args: Any, **kwargs: Any) -> Any:
            require_capability(tx, *capabilities)
            return func(self, tx, *args, **kwargs)

        wrapper.required_capabilities = capabilities  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
