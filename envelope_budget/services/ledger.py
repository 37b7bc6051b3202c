"""
Ledger engine: posting and listing transactions.

Posting protocol, all inside one unit of work:

1. validate the request (before any store interaction);
2. lock the envelope row, waiting for any other posting on the same envelope;
3. read the derived balance;
4. reject outflows that exceed it when `prevent_negative` is set;
5. insert the transaction (default `occurred_at` assigned under the lock);
6. re-read the balance, then commit.

Any exception rolls the whole unit of work back, so a rejected or failed
posting leaves no trace.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from envelope_budget.config import Settings, get_settings
from envelope_budget.domain.models import (
    Direction,
    PostingResult,
    Transaction,
    TransactionCreate,
    TransactionQuery,
    parse_input,
)
from envelope_budget.errors import InsufficientFundsError, NotFoundError
from envelope_budget.store.abstract import Store
from envelope_budget.utils.logging import get_logger
from envelope_budget.utils.timing import time_block

log = get_logger(__name__)


class LedgerEngine:
    """
    Appends transactions against envelopes under per-envelope mutual exclusion.

    Parameters
    ----------
    store : Store
        The transactional store; shared with the envelope registry.
    settings : Settings | None
        Source of the transaction listing limits.
    """

    def __init__(self, store: Store, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._store = store
        self.default_limit = settings.transactions_default_limit
        self.max_limit = settings.transactions_max_limit

    def post_transaction(
        self,
        envelope_id: Optional[int],
        direction: Union[Direction, str, None],
        amount: Union[Decimal, int, float, str, None],
        who: Optional[str],
        note: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        prevent_negative: bool = True,
    ) -> PostingResult:
        """
        Validate the arguments and post them.

        Raises:
            ValidationError: malformed input; nothing touched the store.
            NotFoundError: the envelope does not exist.
            InsufficientFundsError: outflow larger than the balance while
                `prevent_negative` is set.
            ConflictTimeoutError: the store gave up waiting for the lock.
        """
        draft = parse_input(
            TransactionCreate,
            envelope_id=envelope_id,
            direction=direction,
            amount=amount,
            who=who,
            note=note,
            occurred_at=occurred_at,
            prevent_negative=prevent_negative,
        )
        return self.post(draft)

    def post(self, draft: TransactionCreate) -> PostingResult:
        envelope_id = draft.envelope_id
        with time_block("posting") as total:
            with self._store.unit_of_work() as uow:
                with time_block("lock-wait") as lock_wait:
                    found = uow.lock_envelope(envelope_id)
                if not found:
                    raise NotFoundError("envelope", envelope_id)

                balance = uow.envelope_balance(envelope_id)
                if balance is None:
                    raise NotFoundError("envelope", envelope_id)

                if (
                    draft.prevent_negative
                    and draft.direction is Direction.OUT
                    and balance < draft.amount
                ):
                    log.warning(
                        "overdraft_rejected",
                        extra={
                            "envelope_id": envelope_id,
                            "available": str(balance),
                            "requested": str(draft.amount),
                            "who": draft.who,
                        },
                    )
                    raise InsufficientFundsError(
                        available=balance, requested=draft.amount, envelope_id=envelope_id
                    )

                tx = uow.insert_transaction(draft)
                new_balance = uow.envelope_balance(envelope_id)
                if new_balance is None:
                    raise NotFoundError("envelope", envelope_id)

        log.info(
            "transaction_posted",
            extra={
                "envelope_id": envelope_id,
                "transaction_id": tx.id,
                "direction": tx.direction.value,
                "amount": str(tx.amount),
                "new_balance": str(new_balance),
                "lock_wait_ms": lock_wait.duration_ms,
                "duration_ms": total.duration_ms,
            },
        )
        return PostingResult(tx=tx, new_balance=new_balance)

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Missing limit means the default; anything else is clamped to [0, max]."""
        if limit is None:
            return min(self.default_limit, self.max_limit)
        return max(0, min(int(limit), self.max_limit))

    def list_transactions(
        self,
        envelope_id: Optional[int] = None,
        who: Optional[str] = None,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """
        Transactions matching every given filter, most recent `occurred_at` first.

        `from_` is inclusive and `to` exclusive. No lock is taken; the result is
        a point-in-time read.
        """
        query = parse_input(
            TransactionQuery,
            envelope_id=envelope_id,
            who=who,
            from_=from_,
            to=to,
            limit=self.clamp_limit(limit),
        )
        return self._store.list_transactions(query)


__all__ = ["LedgerEngine"]
