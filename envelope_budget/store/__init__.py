"""
Store package for the Envelope Budget API.

Re-exports the store interfaces and both backends, plus `build_store`, which
picks the backend named by `Settings.store_backend`.
"""

from __future__ import annotations

from typing import Optional

from envelope_budget.config import Settings, get_settings
from envelope_budget.store.abstract import AbstractStore, Store, UnitOfWork
from envelope_budget.store.memory import InMemoryStore
from envelope_budget.store.postgres import PostgresStore


def build_store(settings: Optional[Settings] = None) -> AbstractStore:
    """Create the configured store. The caller owns it and must close it."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return InMemoryStore()
    return PostgresStore.from_settings(settings)


__all__ = [
    # Abstracts
    "AbstractStore",
    "Store",
    "UnitOfWork",
    # Backends
    "InMemoryStore",
    "PostgresStore",
    # Factory
    "build_store",
]
