"""
In-process store for local runs and tests.

Holds rows in dictionaries and gives the same single-writer-per-envelope
guarantee as the PostgreSQL row lock through a lock table keyed by envelope id:
a posting holds its envelope's lock for the whole unit of work, other envelopes
use other locks and never wait on it. Writes made inside a unit of work are
staged and only become visible on commit.
"""

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional

from envelope_budget.domain.models import (
    Envelope,
    EnvelopeCreate,
    Transaction,
    TransactionCreate,
    TransactionQuery,
)
from envelope_budget.errors import ConflictTimeoutError, NotFoundError
from envelope_budget.store.abstract import AbstractStore, UnitOfWork


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class _LockTable:
    """
    One lock per envelope id, alive only while someone holds or waits for it.

    `users` counts holders plus waiters and is only touched under `_guard`;
    the entry is dropped when it falls to zero, so ids that are never posted
    to again (including ids that never existed) leave nothing behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def acquire(self, key: int, timeout: float = -1) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _LockEntry()
            entry.users += 1
        if entry.lock.acquire(timeout=timeout):
            return True
        self._drop(key, entry)
        return False

    def release(self, key: int) -> None:
        with self._guard:
            entry = self._locks[key]
        entry.lock.release()
        self._drop(key, entry)

    def _drop(self, key: int, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]


class _MemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._held: List[int] = []
        self._staged: List[Transaction] = []

    def lock_envelope(self, envelope_id: int) -> bool:
        if envelope_id not in self._held:
            self._store._acquire(envelope_id)
            self._held.append(envelope_id)
        with self._store._data_lock:
            return envelope_id in self._store._envelopes

    def envelope_balance(self, envelope_id: int) -> Optional[Decimal]:
        with self._store._data_lock:
            if envelope_id not in self._store._envelopes:
                return None
            balance = self._store._balance(envelope_id)
        staged = sum(
            (tx.signed_amount for tx in self._staged if tx.envelope_id == envelope_id),
            Decimal("0"),
        )
        return balance + staged

    def insert_transaction(self, draft: TransactionCreate) -> Transaction:
        store = self._store
        with store._data_lock:
            if draft.envelope_id not in store._envelopes:
                raise NotFoundError("envelope", draft.envelope_id)
            tx_id = next(store._tx_ids)
        tx = Transaction(
            id=tx_id,
            envelope_id=draft.envelope_id,
            direction=draft.direction,
            amount=draft.amount,
            who=draft.who,
            note=draft.note,
            occurred_at=draft.occurred_at or store._clock(),
        )
        self._staged.append(tx)
        return tx

    def commit(self) -> None:
        store = self._store
        with store._data_lock:
            for tx in self._staged:
                if tx.envelope_id not in store._envelopes:
                    raise NotFoundError("envelope", tx.envelope_id)
            for tx in self._staged:
                store._transactions.setdefault(tx.envelope_id, []).append(tx)
        self._staged.clear()

    def release(self) -> None:
        self._staged.clear()
        while self._held:
            self._store._locks.release(self._held.pop())


class InMemoryStore(AbstractStore):
    """
    Dictionary-backed store with per-envelope locking.

    Parameters
    ----------
    lock_timeout_seconds : float | None
        How long a unit of work waits for an envelope lock before failing with
        ConflictTimeoutError. None waits forever.
    clock : callable
        Source of `created_at` / default `occurred_at` instants.
    """

    name: str = "memory"

    def __init__(
        self,
        lock_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.lock_timeout_seconds = lock_timeout_seconds
        self._clock = clock
        self._locks = _LockTable()
        self._data_lock = threading.RLock()
        self._envelopes: Dict[int, Dict[str, object]] = {}
        self._transactions: Dict[int, List[Transaction]] = {}
        self._envelope_ids = itertools.count(1)
        self._tx_ids = itertools.count(1)

    def _acquire(self, envelope_id: int) -> None:
        timeout = -1 if self.lock_timeout_seconds is None else self.lock_timeout_seconds
        if not self._locks.acquire(envelope_id, timeout=timeout):
            raise ConflictTimeoutError(
                f"Envelope {envelope_id} is busy, the lock could not be acquired in time; "
                "retry the request"
            )

    def _balance(self, envelope_id: int) -> Decimal:
        row = self._envelopes[envelope_id]
        balance = Decimal(row["initial_amount"])  # type: ignore[arg-type]
        for tx in self._transactions.get(envelope_id, ()):
            balance += tx.signed_amount
        return balance

    def _envelope(self, envelope_id: int) -> Envelope:
        return Envelope(**self._envelopes[envelope_id], balance=self._balance(envelope_id))

    @contextmanager
    def unit_of_work(self) -> Generator[_MemoryUnitOfWork, None, None]:
        uow = _MemoryUnitOfWork(self)
        try:
            yield uow
            uow.commit()
        finally:
            uow.release()

    def list_envelopes(self, include_inactive: bool = False) -> List[Envelope]:
        with self._data_lock:
            envelopes = [
                self._envelope(envelope_id)
                for envelope_id, row in self._envelopes.items()
                if include_inactive or row["active"]
            ]
        envelopes.sort(key=lambda env: (env.created_at, env.id), reverse=True)
        return envelopes

    def create_envelope(self, draft: EnvelopeCreate) -> Envelope:
        with self._data_lock:
            envelope_id = next(self._envelope_ids)
            self._envelopes[envelope_id] = {
                "id": envelope_id,
                "name": draft.name,
                "initial_amount": draft.initial_amount,
                "start_date": draft.start_date,
                "end_date": draft.end_date,
                "active": True,
                "created_at": self._clock(),
            }
            return self._envelope(envelope_id)

    def set_envelope_active(self, envelope_id: int, active: bool) -> Optional[Envelope]:
        with self._data_lock:
            row = self._envelopes.get(envelope_id)
            if row is None:
                return None
            row["active"] = active
            return self._envelope(envelope_id)

    def delete_envelope(self, envelope_id: int) -> bool:
        # Waits for in-flight postings on this envelope, like DELETE on a locked row.
        self._acquire(envelope_id)
        try:
            with self._data_lock:
                if self._envelopes.pop(envelope_id, None) is None:
                    return False
                self._transactions.pop(envelope_id, None)
                return True
        finally:
            self._locks.release(envelope_id)

    def list_transactions(self, query: TransactionQuery) -> List[Transaction]:
        with self._data_lock:
            if query.envelope_id is not None:
                candidates = list(self._transactions.get(query.envelope_id, ()))
            else:
                candidates = [tx for txs in self._transactions.values() for tx in txs]

        matches = [
            tx
            for tx in candidates
            if (query.who is None or tx.who == query.who)
            and (query.from_ is None or tx.occurred_at >= query.from_)
            and (query.to is None or tx.occurred_at < query.to)
        ]
        matches.sort(key=lambda tx: (tx.occurred_at, tx.id), reverse=True)
        return matches[: max(query.limit, 0)]


__all__ = ["InMemoryStore"]
