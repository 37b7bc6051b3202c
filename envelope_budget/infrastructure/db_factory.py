"""
Database connection factory utilities for the Envelope Budget API.

Builds the bounded psycopg ConnectionPool that a PostgresStore owns, applies
per-transaction store timeouts, and translates psycopg failures into the
domain error taxonomy. The pool is created by whoever owns the store and is
passed in explicitly; there is no process-wide pool.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg import errors as pg_errors
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from envelope_budget.config import Settings, build_dsn, get_settings
from envelope_budget.errors import (
    BudgetError,
    ConflictTimeoutError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from envelope_budget.utils.logging import get_logger

log = get_logger(__name__)

_CONTENTION_ERRORS = (
    pg_errors.LockNotAvailable,
    pg_errors.QueryCanceled,
    pg_errors.DeadlockDetected,
    pg_errors.SerializationFailure,
)

_INPUT_ERRORS = (
    pg_errors.CheckViolation,
    pg_errors.NotNullViolation,
    psycopg.DataError,
)


def create_pool(
    settings: Optional[Settings] = None,
    dsn: Optional[str] = None,
    open_pool: bool = True,
) -> ConnectionPool:
    """
    Create the connection pool backing a PostgresStore.

    Parameters
    ----------
    settings : Settings | None
        Source of pool bounds and timeouts. Defaults to the cached settings.
    dsn : str | None
        Optional DSN override (tests, scripts). Defaults to `build_dsn(settings)`.
    open_pool : bool
        Whether to open the pool and wait for the database to answer.

    Returns
    -------
    ConnectionPool
        A bounded pool; callers own it and must close it.
    """
    settings = settings or get_settings()
    pool = ConnectionPool(
        conninfo=dsn or build_dsn(settings),
        min_size=settings.db_pool_min_size,
        max_size=max(settings.db_pool_max_size, settings.db_pool_min_size),
        timeout=settings.db_pool_timeout_seconds,
        name="envelope-budget",
        open=False,
    )
    if open_pool:
        pool.open()
        check_connection(pool)
        log.info(
            "pool_opened",
            extra={
                "min_size": settings.db_pool_min_size,
                "max_size": settings.db_pool_max_size,
                "db_host": settings.db_host,
                "db_name": settings.db_name,
            },
        )
    return pool


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((PoolTimeout, psycopg.OperationalError)),
    reraise=True,
)
def check_connection(pool: ConnectionPool) -> None:
    """
    Borrow one connection and run a trivial query.

    Retries up to 3 times with exponential backoff while the database is still
    coming up.

    Raises
    ------
    PoolTimeout
        If no connection could be obtained after all retry attempts.
    """
    with pool.connection() as conn:
        conn.execute("SELECT 1")


def apply_timeouts(
    cur: psycopg.Cursor,
    lock_timeout_ms: int = 0,
    statement_timeout_ms: int = 0,
) -> None:
    """
    Apply transaction-local store timeouts. Zero leaves the server default.

    `set_config(..., true)` scopes the value to the current transaction, so the
    connection goes back to the pool unchanged.
    """
    if lock_timeout_ms > 0:
        cur.execute("SELECT set_config('lock_timeout', %s, true)", (f"{lock_timeout_ms}ms",))
    if statement_timeout_ms > 0:
        cur.execute(
            "SELECT set_config('statement_timeout', %s, true)", (f"{statement_timeout_ms}ms",)
        )


@contextmanager
def translate_errors() -> Generator[None, None, None]:
    """
    Re-raise psycopg and pool failures as domain errors.

    Domain errors raised inside the block pass through untouched.
    """
    try:
        yield
    except BudgetError:
        raise
    except PoolTimeout as exc:
        log.warning("pool_timeout", extra={"error": str(exc)})
        raise ConflictTimeoutError("Timed out waiting for a database connection") from exc
    except _CONTENTION_ERRORS as exc:
        log.warning(
            "lock_contention",
            extra={"sqlstate": exc.sqlstate, "error_type": type(exc).__name__},
        )
        raise ConflictTimeoutError(
            "Envelope is busy, the lock could not be acquired in time; retry the request"
        ) from exc
    except pg_errors.ForeignKeyViolation as exc:
        raise NotFoundError("envelope") from exc
    except _INPUT_ERRORS as exc:
        message = exc.diag.message_primary or "invalid value"
        raise ValidationError(message) from exc
    except psycopg.Error as exc:
        log.exception(
            "store_error",
            extra={"sqlstate": getattr(exc, "sqlstate", None), "error_type": type(exc).__name__},
        )
        raise StoreError("Database operation failed") from exc


__all__ = [
    "create_pool",
    "check_connection",
    "apply_timeouts",
    "translate_errors",
]
