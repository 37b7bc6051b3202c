"""
End-to-end checks against a real PostgreSQL instance.

Opt in with RUN_INTEGRATION_TESTS=1; the DB_* variables select the server.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from envelope_budget.config import Settings
from envelope_budget.errors import InsufficientFundsError, NotFoundError
from envelope_budget.services.ledger import LedgerEngine
from envelope_budget.services.registry import EnvelopeRegistry
from envelope_budget.store.postgres import PostgresStore

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS") != "1",
    reason="set RUN_INTEGRATION_TESTS=1 to run against PostgreSQL",
)


@pytest.fixture
def registry(clean_pg_store: PostgresStore) -> EnvelopeRegistry:
    return EnvelopeRegistry(clean_pg_store)


@pytest.fixture
def ledger(clean_pg_store: PostgresStore, test_settings: Settings) -> LedgerEngine:
    return LedgerEngine(clean_pg_store, test_settings)


def test_groceries_scenario(registry: EnvelopeRegistry, ledger: LedgerEngine) -> None:
    envelope = registry.create(name="Groceries", initial_amount="100.00")

    assert ledger.post_transaction(envelope.id, "in", "50", "alice").new_balance == Decimal("150.00")
    assert ledger.post_transaction(envelope.id, "out", "40", "bob").new_balance == Decimal("110.00")

    with pytest.raises(InsufficientFundsError):
        ledger.post_transaction(envelope.id, "out", "200", "bob")

    bypass = ledger.post_transaction(envelope.id, "out", "200", "bob", prevent_negative=False)
    assert bypass.new_balance == Decimal("-90.00")
    assert len(ledger.list_transactions(envelope_id=envelope.id)) == 3


def test_posting_to_missing_envelope(ledger: LedgerEngine) -> None:
    with pytest.raises(NotFoundError):
        ledger.post_transaction(123456, "in", "5", "alice")
    assert ledger.list_transactions() == []


def test_soft_delete_restore_and_cascade(
    registry: EnvelopeRegistry, ledger: LedgerEngine
) -> None:
    envelope = registry.create(name="Travel", initial_amount="10")
    ledger.post_transaction(envelope.id, "in", "5", "alice")

    assert registry.soft_delete(envelope.id).balance == Decimal("15.00")
    assert registry.list_envelopes() == []
    assert registry.restore(envelope.id).active is True

    assert registry.hard_delete(envelope.id) is True
    assert registry.hard_delete(envelope.id) is False
    assert ledger.list_transactions() == []


def test_listing_filters_and_window(registry: EnvelopeRegistry, ledger: LedgerEngine) -> None:
    envelope = registry.create(name="Fun", initial_amount="100")
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for offset, who in enumerate(["alice", "bob", "alice", "bob"]):
        ledger.post_transaction(
            envelope.id, "in", "1", who, occurred_at=base + timedelta(days=offset)
        )

    window = ledger.list_transactions(
        who="alice", from_=base, to=base + timedelta(days=2)
    )
    assert [tx.occurred_at for tx in window] == [base]

    newest = ledger.list_transactions(envelope_id=envelope.id, limit=2)
    assert [tx.occurred_at for tx in newest] == [
        base + timedelta(days=3),
        base + timedelta(days=2),
    ]


def test_row_lock_serializes_concurrent_outflows(
    registry: EnvelopeRegistry, ledger: LedgerEngine
) -> None:
    envelope = registry.create(name="Shared", initial_amount="100")
    workers = 6
    barrier = threading.Barrier(workers)

    def withdraw(index: int) -> bool:
        barrier.wait()
        try:
            ledger.post_transaction(envelope.id, "out", "30", f"worker-{index}")
        except InsufficientFundsError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=workers) as executor:
        outcomes = list(executor.map(withdraw, range(workers)))

    assert outcomes.count(True) == 3
    balances = {env.id: env.balance for env in registry.list_envelopes()}
    assert balances[envelope.id] == Decimal("10.00")
