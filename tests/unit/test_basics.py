from dataclasses import fields
from time import sleep

from envelope_budget import config
from envelope_budget.config import Settings, build_dsn
from envelope_budget.store import InMemoryStore, build_store
from envelope_budget.utils import timing

EXPECTED_DEFAULT_LIMIT = 200
EXPECTED_MAX_LIMIT = 1000


def test_get_settings_defaults(monkeypatch):
    for var in ("DB_HOST", "DB_PORT", "DB_USER", "DB_NAME", "STORE_BACKEND", "API_PREFIX"):
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()
    try:
        settings = config.get_settings()
        assert settings.db_host == "localhost"
        assert settings.db_port == 5432
        assert settings.db_user == "postgres"
        assert settings.db_name == "mybudget"
        assert settings.store_backend == "postgres"
        assert settings.api_prefix == "/api"
        assert settings.transactions_default_limit == EXPECTED_DEFAULT_LIMIT
        assert settings.transactions_max_limit == EXPECTED_MAX_LIMIT
        assert settings.db_pool_max_size >= settings.db_pool_min_size
    finally:
        config.get_settings.cache_clear()


def test_settings_read_environment_aliases(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_LOCK_TIMEOUT_MS", "2500")
    monkeypatch.setenv("STORE_BACKEND", "memory")

    settings = Settings()

    assert settings.db_host == "db.internal"
    assert settings.db_lock_timeout_ms == 2500
    assert settings.store_backend == "memory"


def test_build_dsn_composes_settings():
    settings = Settings(
        db_host="h", db_port=6543, db_user="u", db_password="p", db_name="budget"
    )
    assert build_dsn(settings) == "postgresql://u:p@h:6543/budget"


def test_build_store_memory_backend():
    store = build_store(Settings(store_backend="memory"))
    assert isinstance(store, InMemoryStore)
    assert store.name == "memory"


def test_time_block_measures_time():
    with timing.time_block("sleep") as stats:
        sleep(0.05)
    assert stats.label == "sleep"
    assert stats.duration_seconds >= 0.05
    assert stats.duration_ms >= 50.0


def test_time_block_records_duration_when_block_raises():
    stats = None
    try:
        with timing.time_block("failing") as stats:
            raise ValueError("nope")
    except ValueError:
        pass
    assert stats is not None
    assert stats.end_ts >= stats.start_ts


def test_timing_stats_carries_only_measurements():
    names = [f.name for f in fields(timing.TimingStats)]
    assert names == ["label", "start_ts", "end_ts", "duration_seconds"]
