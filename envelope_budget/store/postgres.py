"""
PostgreSQL store backed by a psycopg ConnectionPool.

Every public call borrows one pooled connection for the duration of a single
database transaction and hands it back on every exit path. Postings serialize
per envelope through `SELECT ... FOR UPDATE` on the envelope row; balances are
always read through the `envelope_balances` view.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Generator, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from envelope_budget.config import Settings, get_settings
from envelope_budget.domain.models import (
    Envelope,
    EnvelopeCreate,
    Transaction,
    TransactionCreate,
    TransactionQuery,
)
from envelope_budget.infrastructure.db_factory import (
    apply_timeouts,
    create_pool,
    translate_errors,
)
from envelope_budget.store.abstract import AbstractStore, UnitOfWork
from envelope_budget.store.schema import SCHEMA_SQL
from envelope_budget.utils.logging import get_logger

log = get_logger(__name__)

_SELECT_ENVELOPE = "SELECT * FROM envelope_balances WHERE id = %s"
_LIST_ALL_ENVELOPES = "SELECT * FROM envelope_balances ORDER BY created_at DESC, id DESC"
_LIST_ACTIVE_ENVELOPES = (
    "SELECT * FROM envelope_balances WHERE active = true ORDER BY created_at DESC, id DESC"
)
_INSERT_ENVELOPE = """
    INSERT INTO envelopes (name, initial_amount, start_date, end_date)
    VALUES (%s, %s, %s, %s)
    RETURNING id
"""
_SET_ACTIVE = "UPDATE envelopes SET active = %s WHERE id = %s RETURNING id"
_DELETE_ENVELOPE = "DELETE FROM envelopes WHERE id = %s"

_LOCK_ENVELOPE = "SELECT id FROM envelopes WHERE id = %s FOR UPDATE"
_SELECT_BALANCE = "SELECT balance FROM envelope_balances WHERE id = %s"
# clock_timestamp(), not now(): now() is frozen at transaction start, before the lock was held.
_INSERT_TRANSACTION = """
    INSERT INTO transactions (envelope_id, direction, amount, who, note, occurred_at)
    VALUES (%s, %s, %s, %s, %s, COALESCE(%s::timestamptz, clock_timestamp()))
    RETURNING *
"""


class PostgresUnitOfWork(UnitOfWork):
    """
    Posting operations bound to one open database transaction.
    """

    def __init__(self, cur: psycopg.Cursor) -> None:
        self._cur = cur

    def lock_envelope(self, envelope_id: int) -> bool:
        self._cur.execute(_LOCK_ENVELOPE, (envelope_id,))
        return self._cur.fetchone() is not None

    def envelope_balance(self, envelope_id: int) -> Optional[Decimal]:
        self._cur.execute(_SELECT_BALANCE, (envelope_id,))
        row = self._cur.fetchone()
        return None if row is None else Decimal(row["balance"])

    def insert_transaction(self, draft: TransactionCreate) -> Transaction:
        self._cur.execute(
            _INSERT_TRANSACTION,
            (
                draft.envelope_id,
                draft.direction.value,
                draft.amount,
                draft.who,
                draft.note,
                draft.occurred_at,
            ),
        )
        return Transaction.model_validate(self._cur.fetchone())


class PostgresStore(AbstractStore):
    """
    Store implementation over a bounded psycopg ConnectionPool.

    The pool is injected; the store closes it only when it created it itself
    (see `from_settings`).
    """

    name: str = "postgres"

    def __init__(
        self,
        pool: ConnectionPool,
        lock_timeout_ms: int = 0,
        statement_timeout_ms: int = 0,
        owns_pool: bool = False,
    ) -> None:
        self._pool = pool
        self.lock_timeout_ms = lock_timeout_ms
        self.statement_timeout_ms = statement_timeout_ms
        self._owns_pool = owns_pool

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, dsn: Optional[str] = None
    ) -> "PostgresStore":
        settings = settings or get_settings()
        pool = create_pool(settings, dsn=dsn)
        return cls(
            pool,
            lock_timeout_ms=settings.db_lock_timeout_ms,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            owns_pool=True,
        )

    @contextmanager
    def _cursor(self) -> Generator[psycopg.Cursor, None, None]:
        """
        Borrow a connection, open a transaction, and yield a dict-row cursor.

        Commits on normal exit, rolls back on any exception, and always returns
        the connection to the pool.
        """
        with translate_errors():
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        apply_timeouts(cur, self.lock_timeout_ms, self.statement_timeout_ms)
                        yield cur

    @contextmanager
    def unit_of_work(self) -> Generator[PostgresUnitOfWork, None, None]:
        with self._cursor() as cur:
            yield PostgresUnitOfWork(cur)

    def create_schema(self) -> None:
        """Apply the idempotent DDL (tables, indexes, balance view)."""
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("schema_applied")

    def list_envelopes(self, include_inactive: bool = False) -> List[Envelope]:
        sql = _LIST_ALL_ENVELOPES if include_inactive else _LIST_ACTIVE_ENVELOPES
        with self._cursor() as cur:
            cur.execute(sql)
            return [Envelope.model_validate(row) for row in cur.fetchall()]

    def create_envelope(self, draft: EnvelopeCreate) -> Envelope:
        with self._cursor() as cur:
            cur.execute(
                _INSERT_ENVELOPE,
                (draft.name, draft.initial_amount, draft.start_date, draft.end_date),
            )
            envelope_id = cur.fetchone()["id"]
            cur.execute(_SELECT_ENVELOPE, (envelope_id,))
            return Envelope.model_validate(cur.fetchone())

    def set_envelope_active(self, envelope_id: int, active: bool) -> Optional[Envelope]:
        with self._cursor() as cur:
            cur.execute(_SET_ACTIVE, (active, envelope_id))
            if cur.fetchone() is None:
                return None
            cur.execute(_SELECT_ENVELOPE, (envelope_id,))
            return Envelope.model_validate(cur.fetchone())

    def delete_envelope(self, envelope_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute(_DELETE_ENVELOPE, (envelope_id,))
            return cur.rowcount > 0

    def list_transactions(self, query: TransactionQuery) -> List[Transaction]:
        sql, params = build_transaction_query(query)
        with self._cursor() as cur:
            cur.execute(sql, params)
            return [Transaction.model_validate(row) for row in cur.fetchall()]

    def close(self) -> None:
        if self._owns_pool and not self._pool.closed:
            self._pool.close()
            log.info("pool_closed")


def build_transaction_query(query: TransactionQuery) -> tuple[str, List[Any]]:
    """
    Compose the filtered transaction listing. Only bound parameters reach SQL.
    """
    clauses: List[str] = []
    params: List[Any] = []
    if query.envelope_id is not None:
        clauses.append("envelope_id = %s")
        params.append(query.envelope_id)
    if query.who is not None:
        clauses.append("who = %s")
        params.append(query.who)
    if query.from_ is not None:
        clauses.append("occurred_at >= %s")
        params.append(query.from_)
    if query.to is not None:
        clauses.append("occurred_at < %s")
        params.append(query.to)

    sql = "SELECT * FROM transactions"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY occurred_at DESC, id DESC LIMIT %s"
    params.append(query.limit)
    return sql, params


__all__ = ["PostgresStore", "PostgresUnitOfWork", "build_transaction_query"]
