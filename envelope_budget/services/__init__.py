"""
Services package for the Envelope Budget API.

The envelope registry and the ledger engine share one store; neither keeps
state of its own beyond it.
"""

from envelope_budget.services.ledger import LedgerEngine
from envelope_budget.services.registry import EnvelopeRegistry

__all__ = [
    "EnvelopeRegistry",
    "LedgerEngine",
]
