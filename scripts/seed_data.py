"""
Demo data seeding script for the Envelope Budget API.

Implements deterministic pseudo-random envelopes and transactions. Every
transaction goes through the ledger engine, so the overdraft policy applies:
outflows that would overdraw an envelope are rejected and counted, never
written.
"""

from __future__ import annotations

import random
import sys
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import List

import typer

from envelope_budget.config import get_settings
from envelope_budget.errors import InsufficientFundsError
from envelope_budget.services.ledger import LedgerEngine
from envelope_budget.services.registry import EnvelopeRegistry
from envelope_budget.store.abstract import AbstractStore
from envelope_budget.store.memory import InMemoryStore
from envelope_budget.store.postgres import PostgresStore

app = typer.Typer(help="Seed envelopes and transactions through the ledger engine.")

ENVELOPE_NAMES = ["Groceries", "Rent", "Transport", "Utilities", "Dining", "Savings", "Gifts"]
ACTORS = ["alice", "bob", "carol"]


@dataclass
class SeedReport:
    envelope_ids: List[int] = field(default_factory=list)
    posted: int = 0
    rejected: int = 0


def _amount(rng: random.Random, low: int, high: int) -> Decimal:
    return Decimal(rng.randint(low * 100, high * 100)) / Decimal(100)


def _seed(
    store: AbstractStore,
    envelopes: int,
    transactions: int,
    seed: int,
) -> SeedReport:
    rng = random.Random(seed)
    registry = EnvelopeRegistry(store)
    ledger = LedgerEngine(store)
    report = SeedReport()
    start = datetime.now(UTC) - timedelta(days=30)

    for i in range(envelopes):
        name = ENVELOPE_NAMES[i % len(ENVELOPE_NAMES)]
        if i >= len(ENVELOPE_NAMES):
            name = f"{name} {i // len(ENVELOPE_NAMES) + 1}"
        envelope = registry.create(
            name=name,
            initial_amount=_amount(rng, 50, 500),
            start_date=start,
            end_date=start + timedelta(days=30),
        )
        report.envelope_ids.append(envelope.id)

    if not report.envelope_ids:
        return report

    for i in range(transactions):
        try:
            ledger.post_transaction(
                envelope_id=rng.choice(report.envelope_ids),
                direction=rng.choice(["in", "out", "out"]),
                amount=_amount(rng, 1, 150),
                who=rng.choice(ACTORS),
                note=f"seed #{i}",
                occurred_at=start + timedelta(minutes=rng.randint(0, 30 * 24 * 60)),
            )
            report.posted += 1
        except InsufficientFundsError:
            report.rejected += 1
    return report


@app.command()
def main(
    envelopes: int = typer.Option(
        5,
        "--envelopes",
        "-e",
        help="Number of envelopes to create.",
    ),
    transactions: int = typer.Option(
        200,
        "--transactions",
        "-t",
        help="Number of transactions to attempt.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    memory: bool = typer.Option(
        False,
        "--memory",
        help="Seed a throwaway in-memory store (dry run).",
    ),
) -> None:
    """
    Create envelopes and post transactions against them.
    """
    start = time.perf_counter()
    if memory:
        store: AbstractStore = InMemoryStore()
    else:
        store = PostgresStore.from_settings(get_settings(), dsn=dsn)

    with store:
        if isinstance(store, PostgresStore):
            store.create_schema()
        typer.echo(
            f"Seeding {envelopes} envelopes and {transactions:,} transactions "
            f"into {store.name} (seed={seed})"
        )
        report = _seed(store, envelopes=envelopes, transactions=transactions, seed=seed)

    duration = time.perf_counter() - start
    typer.echo(
        f"Created envelopes {report.envelope_ids}; posted {report.posted}, "
        f"rejected {report.rejected} overdrafts in {duration:.2f}s."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
