"""
Domain package for the Envelope Budget API.

Exports the records and validated inputs shared by the store backends, the
services, and the HTTP layer. Keep this package focused on data definitions
and validation concerns.
"""

from envelope_budget.domain.models import (
    Direction,
    Envelope,
    EnvelopeCreate,
    PostingResult,
    Transaction,
    TransactionCreate,
    TransactionQuery,
    parse_input,
)

__all__ = [
    "Direction",
    "Envelope",
    "EnvelopeCreate",
    "PostingResult",
    "Transaction",
    "TransactionCreate",
    "TransactionQuery",
    "parse_input",
]
