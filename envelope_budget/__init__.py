"""
Envelope Budget - a budgeting API over named envelopes and their transactions.

This package provides:

- An envelope registry (create, list, soft delete, restore, hard delete)
- A ledger engine that posts inflows/outflows under a per-envelope lock,
  derives balances from transaction history, and rejects overdrafts on request
- PostgreSQL and in-memory store backends sharing one interface
- A FastAPI HTTP surface and a typer CLI
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from envelope_budget.config import Settings, get_settings
from envelope_budget.domain.models import Direction, Envelope, PostingResult, Transaction
from envelope_budget.errors import (
    BudgetError,
    ConflictTimeoutError,
    InsufficientFundsError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from envelope_budget.services import EnvelopeRegistry, LedgerEngine
from envelope_budget.store import InMemoryStore, PostgresStore, build_store
from envelope_budget.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "Direction",
    "Envelope",
    "PostingResult",
    "Transaction",
    # Errors
    "BudgetError",
    "ConflictTimeoutError",
    "InsufficientFundsError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
    # Services
    "EnvelopeRegistry",
    "LedgerEngine",
    # Stores
    "InMemoryStore",
    "PostgresStore",
    "build_store",
    # Logging
    "configure_logging",
    "get_logger",
]
