"""
Infrastructure package for the Envelope Budget API.

Centralizes database connectivity concerns (pool creation, store timeouts,
error translation). Keep this layer focused on I/O and resource management,
decoupled from registry/ledger logic.
"""

from envelope_budget.infrastructure.db_factory import (
    apply_timeouts,
    check_connection,
    create_pool,
    translate_errors,
)

__all__ = [
    "apply_timeouts",
    "check_connection",
    "create_pool",
    "translate_errors",
]
