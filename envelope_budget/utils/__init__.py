"""
Utilities package for the Envelope Budget API.

Exports shared helpers for logging, timing, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from envelope_budget.utils.logging import configure_logging, get_logger
from envelope_budget.utils.timing import TimingStats, time_block

__all__ = [
    "configure_logging",
    "get_logger",
    "TimingStats",
    "time_block",
]
