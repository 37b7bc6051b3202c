"""
Typed exception hierarchy for the Envelope Budget API.

Every error carries a machine-readable ``code`` class attribute so callers
(and the HTTP layer) can branch on type instead of parsing messages:

    BudgetError (base)
    |
    +-- ValidationError          missing/malformed input, no side effects
    +-- NotFoundError            referenced envelope does not exist
    +-- InsufficientFundsError   overdraft rejected by policy
    +-- ConflictTimeoutError     lock contention / timeout, retryable
    +-- StoreError               any other persistence failure

Errors raised inside a unit of work always roll it back before surfacing.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional


class BudgetError(Exception):
    """Base class for all domain errors."""

    code: str = "BUDGET_ERROR"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable payload for API responses and structured logs."""
        return {"error": self.message, "code": self.code}


class ValidationError(BudgetError):
    """Input is missing or malformed."""

    code: str = "VALIDATION_ERROR"


class NotFoundError(BudgetError):
    """A mutation referenced an entity that does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class InsufficientFundsError(BudgetError):
    """An outflow would push the envelope balance below zero."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        envelope_id: Optional[int] = None,
    ) -> None:
        self.available = available
        self.requested = requested
        self.envelope_id = envelope_id
        super().__init__(
            f"Insufficient funds: available {available}, requested {requested}"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["available"] = float(self.available)
        payload["requested"] = float(self.requested)
        return payload


class ConflictTimeoutError(BudgetError):
    """The store could not grant a lock or connection in time."""

    code: str = "CONFLICT_TIMEOUT"
    retryable: bool = True


class StoreError(BudgetError):
    """Unexpected persistence failure."""

    code: str = "STORE_ERROR"


__all__ = [
    "BudgetError",
    "ValidationError",
    "NotFoundError",
    "InsufficientFundsError",
    "ConflictTimeoutError",
    "StoreError",
]
