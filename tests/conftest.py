"""
Pytest configuration for the Envelope Budget API.

Provides fixtures for:
- Settings override for tests
- In-memory stores and the services built on them
- Database connection management and a clean Postgres store for integration tests
"""

from __future__ import annotations

import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import psycopg
import pytest

from envelope_budget.config import Settings, build_dsn
from envelope_budget.services.ledger import LedgerEngine
from envelope_budget.services.registry import EnvelopeRegistry
from envelope_budget.store.memory import InMemoryStore
from envelope_budget.store.postgres import PostgresStore
from envelope_budget.store.schema import TRUNCATE_SQL

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_clock(
    start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)
) -> Callable[[], datetime]:
    """Deterministic strictly increasing clock."""
    ticks = itertools.count()

    def clock() -> datetime:
        return start + step * next(ticks)

    return clock


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "mybudget_test"),
        db_pool_max_size=8,
        db_lock_timeout_ms=5000,
        log_level="DEBUG",
    )


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore(clock=make_clock())


@pytest.fixture
def registry(memory_store: InMemoryStore) -> EnvelopeRegistry:
    return EnvelopeRegistry(memory_store)


@pytest.fixture
def ledger(memory_store: InMemoryStore, test_settings: Settings) -> LedgerEngine:
    return LedgerEngine(memory_store, test_settings)


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1;")
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def pg_store(
    test_settings: Settings, test_dsn: str, db_connection_available: bool
) -> Generator[PostgresStore, None, None]:
    """
    Session-scoped Postgres store with the schema applied.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    store = PostgresStore.from_settings(test_settings, dsn=test_dsn)
    try:
        store.create_schema()
        yield store
    finally:
        store.close()


@pytest.fixture
def clean_pg_store(test_dsn: str, pg_store: PostgresStore) -> Generator[PostgresStore, None, None]:
    """
    Empty both tables before and after each test function for isolation.
    """
    with psycopg.connect(test_dsn) as conn:
        conn.execute(TRUNCATE_SQL)
    yield pg_store
    with psycopg.connect(test_dsn) as conn:
        conn.execute(TRUNCATE_SQL)
