"""
Abstract store interfaces for the Envelope Budget API.

A store owns every envelope and transaction row. Concrete backends (PostgreSQL,
in-memory) implement the Store protocol; the ledger drives postings through the
UnitOfWork handed out by `Store.unit_of_work()`, which commits when the block
exits normally and rolls back on any exception.
"""

from __future__ import annotations

import abc
from decimal import Decimal
from typing import ContextManager, List, Optional, Protocol, runtime_checkable

from envelope_budget.domain.models import (
    Envelope,
    EnvelopeCreate,
    Transaction,
    TransactionCreate,
    TransactionQuery,
)


@runtime_checkable
class UnitOfWork(Protocol):
    """
    Operations available inside one atomic unit of work.
    """

    def lock_envelope(self, envelope_id: int) -> bool:
        """
        Take the exclusive lock on an envelope, blocking while another unit of
        work holds it.

        Returns
        -------
        bool
            False when no envelope with this id exists.
        """
        ...

    def envelope_balance(self, envelope_id: int) -> Optional[Decimal]:
        """Derived balance as seen by this unit of work, None if the envelope is absent."""
        ...

    def insert_transaction(self, draft: TransactionCreate) -> Transaction:
        """Append a transaction row. `occurred_at` defaults to the store clock."""
        ...


@runtime_checkable
class Store(Protocol):
    """
    Common interface all store backends implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    def unit_of_work(self) -> ContextManager[UnitOfWork]:
        ...

    def list_envelopes(self, include_inactive: bool = False) -> List[Envelope]:
        ...

    def create_envelope(self, draft: EnvelopeCreate) -> Envelope:
        ...

    def set_envelope_active(self, envelope_id: int, active: bool) -> Optional[Envelope]:
        ...

    def delete_envelope(self, envelope_id: int) -> bool:
        ...

    def list_transactions(self, query: TransactionQuery) -> List[Transaction]:
        ...

    def close(self) -> None:
        ...


class AbstractStore(abc.ABC):
    """
    ABC helper for class-based store backends.

    Subclasses set `name` and implement every abstract method. Stores are
    context managers that close themselves on exit.
    """

    name: str

    @abc.abstractmethod
    def unit_of_work(self) -> ContextManager[UnitOfWork]:  # pragma: no cover - interface only
        """Open an atomic unit of work for a posting."""
        raise NotImplementedError

    @abc.abstractmethod
    def list_envelopes(self, include_inactive: bool = False) -> List[Envelope]:  # pragma: no cover
        """Envelopes with balances, newest first."""
        raise NotImplementedError

    @abc.abstractmethod
    def create_envelope(self, draft: EnvelopeCreate) -> Envelope:  # pragma: no cover
        """Insert an active envelope and return it with its balance."""
        raise NotImplementedError

    @abc.abstractmethod
    def set_envelope_active(
        self, envelope_id: int, active: bool
    ) -> Optional[Envelope]:  # pragma: no cover
        """Toggle the active flag; None when no row matched."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_envelope(self, envelope_id: int) -> bool:  # pragma: no cover
        """Remove an envelope and its transactions; False when nothing was removed."""
        raise NotImplementedError

    @abc.abstractmethod
    def list_transactions(self, query: TransactionQuery) -> List[Transaction]:  # pragma: no cover
        """Filtered transactions, most recent `occurred_at` first."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. Idempotent."""

    def __enter__(self) -> "AbstractStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "UnitOfWork",
    "Store",
    "AbstractStore",
]
