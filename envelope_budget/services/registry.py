"""
Envelope registry: lifecycle of envelope records.

Envelopes are created active, toggled inactive/active by soft delete and
restore, and only physically removed by hard delete, which cascades to every
transaction of the envelope.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from envelope_budget.domain.models import Envelope, EnvelopeCreate, parse_input
from envelope_budget.errors import NotFoundError
from envelope_budget.store.abstract import Store
from envelope_budget.utils.logging import get_logger

log = get_logger(__name__)


class EnvelopeRegistry:
    def __init__(self, store: Store) -> None:
        self._store = store

    def list_envelopes(self, include_inactive: bool = False) -> List[Envelope]:
        """Envelopes with their derived balances, newest `created_at` first."""
        return self._store.list_envelopes(include_inactive=include_inactive)

    def create(
        self,
        name: Optional[str],
        initial_amount: Union[Decimal, int, float, str, None] = 0,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Envelope:
        """
        Validate and insert a new active envelope.

        Raises:
            ValidationError: name missing/blank or amount malformed.
        """
        draft = parse_input(
            EnvelopeCreate,
            name=name,
            initial_amount=initial_amount,
            start_date=start_date,
            end_date=end_date,
        )
        return self.add(draft)

    def add(self, draft: EnvelopeCreate) -> Envelope:
        envelope = self._store.create_envelope(draft)
        log.info(
            "envelope_created",
            extra={
                "envelope_id": envelope.id,
                "envelope_name": envelope.name,
                "initial_amount": str(envelope.initial_amount),
            },
        )
        return envelope

    def soft_delete(self, envelope_id: int) -> Envelope:
        """Mark an envelope inactive. Raises NotFoundError if it does not exist."""
        envelope = self._store.set_envelope_active(envelope_id, False)
        if envelope is None:
            raise NotFoundError("envelope", envelope_id)
        log.info("envelope_soft_deleted", extra={"envelope_id": envelope_id})
        return envelope

    def restore(self, envelope_id: int) -> Envelope:
        """Mark an envelope active again. Raises NotFoundError if it does not exist."""
        envelope = self._store.set_envelope_active(envelope_id, True)
        if envelope is None:
            raise NotFoundError("envelope", envelope_id)
        log.info("envelope_restored", extra={"envelope_id": envelope_id})
        return envelope

    def hard_delete(self, envelope_id: int) -> bool:
        """
        Remove an envelope and all of its transactions.

        Never fails for an unknown id; the return value tells whether a row
        was actually removed.
        """
        deleted = self._store.delete_envelope(envelope_id)
        log.info("envelope_hard_deleted", extra={"envelope_id": envelope_id, "deleted": deleted})
        return deleted


__all__ = ["EnvelopeRegistry"]
