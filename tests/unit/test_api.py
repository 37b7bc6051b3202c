from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from envelope_budget.api import create_app
from envelope_budget.config import Settings
from envelope_budget.errors import ConflictTimeoutError, StoreError
from envelope_budget.store.memory import InMemoryStore

API = "/api"


@pytest.fixture
def client(memory_store: InMemoryStore, test_settings: Settings) -> Generator[TestClient, None, None]:
    with TestClient(create_app(store=memory_store, settings=test_settings)) as test_client:
        yield test_client


def _create_envelope(client: TestClient, name: str, initial_amount: float = 0) -> dict:
    response = client.post(f"{API}/envelopes", json={"name": name, "initialAmount": initial_amount})
    assert response.status_code == 201, response.text
    return response.json()


def _post(client: TestClient, **payload) -> httpx.Response:
    return client.post(f"{API}/transactions", json=payload)


def test_health(client: TestClient) -> None:
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_envelope_returns_camel_case_record(client: TestClient) -> None:
    body = _create_envelope(client, "Groceries", 100)

    assert body["name"] == "Groceries"
    assert body["initialAmount"] == 100.0
    assert body["balance"] == 100.0
    assert body["active"] is True
    assert body["startDate"] is None
    assert "createdAt" in body


@pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "x", "initialAmount": "abc"}])
def test_create_envelope_rejects_bad_payload(client: TestClient, payload: dict) -> None:
    response = client.post(f"{API}/envelopes", json=payload)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert client.get(f"{API}/envelopes", params={"all": "1"}).json() == []


def test_groceries_scenario_over_http(client: TestClient) -> None:
    envelope = _create_envelope(client, "Groceries", 100)
    env_id = envelope["id"]

    inflow = _post(client, envelopeId=env_id, direction="in", amount=50, who="alice")
    assert inflow.status_code == 201
    assert inflow.json()["newBalance"] == 150.0
    assert inflow.json()["tx"]["who"] == "alice"

    outflow = _post(client, envelopeId=env_id, direction="out", amount=40, who="bob")
    assert outflow.json()["newBalance"] == 110.0

    rejected = _post(client, envelopeId=env_id, direction="out", amount=200, who="bob")
    assert rejected.status_code == 400
    assert rejected.json()["code"] == "INSUFFICIENT_FUNDS"
    assert rejected.json()["available"] == 110.0
    assert rejected.json()["requested"] == 200.0

    bypass = _post(
        client, envelopeId=env_id, direction="out", amount=200, who="bob", preventNegative=False
    )
    assert bypass.status_code == 201
    assert bypass.json()["newBalance"] == -90.0

    listed = client.get(f"{API}/envelopes").json()
    assert listed[0]["balance"] == -90.0

    history = client.get(f"{API}/transactions", params={"envelopeId": env_id}).json()
    assert [tx["amount"] for tx in history] == [200.0, 40.0, 50.0]


def test_post_transaction_validation_and_not_found(client: TestClient) -> None:
    bad = _post(client, envelopeId=1, direction="out", amount=-5, who="bob")
    assert bad.status_code == 400
    assert bad.json()["code"] == "VALIDATION_ERROR"

    missing = _post(client, envelopeId=424242, direction="in", amount=5, who="bob")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


def test_soft_delete_restore_and_hard_delete(client: TestClient) -> None:
    envelope = _create_envelope(client, "Travel", 10)
    env_id = envelope["id"]

    soft = client.delete(f"{API}/envelopes/{env_id}")
    assert soft.status_code == 200
    assert soft.json()["mode"] == "soft"
    assert soft.json()["envelope"]["active"] is False
    assert client.get(f"{API}/envelopes").json() == []
    assert len(client.get(f"{API}/envelopes", params={"all": "true"}).json()) == 1

    restored = client.patch(f"{API}/envelopes/{env_id}/restore")
    assert restored.status_code == 200
    assert restored.json()["ok"] is True
    assert restored.json()["envelope"]["active"] is True

    hard = client.delete(f"{API}/envelopes/{env_id}", params={"hard": "1"})
    assert hard.json() == {"ok": True, "mode": "hard", "deleted": True}
    again = client.delete(f"{API}/envelopes/{env_id}", params={"hard": "1"})
    assert again.json()["deleted"] is False


def test_soft_delete_and_restore_unknown_envelope(client: TestClient) -> None:
    assert client.delete(f"{API}/envelopes/999").status_code == 404
    assert client.patch(f"{API}/envelopes/999/restore").status_code == 404


def test_list_transactions_filters(client: TestClient) -> None:
    first = _create_envelope(client, "A", 100)["id"]
    second = _create_envelope(client, "B", 100)["id"]
    _post(client, envelopeId=first, direction="in", amount=1, who="alice")
    _post(client, envelopeId=second, direction="in", amount=2, who="bob")
    _post(client, envelopeId=first, direction="out", amount=3, who="bob")

    by_who = client.get(f"{API}/transactions", params={"who": "bob"}).json()
    assert [tx["amount"] for tx in by_who] == [3.0, 2.0]

    limited = client.get(f"{API}/transactions", params={"limit": 1}).json()
    assert len(limited) == 1

    window = client.get(
        f"{API}/transactions", params={"from": "2000-01-01T00:00:00Z", "to": "2000-01-02T00:00:00Z"}
    ).json()
    assert window == []

    bad = client.get(f"{API}/transactions", params={"envelopeId": "abc"})
    assert bad.status_code == 400


class _BusyStore(InMemoryStore):
    @contextmanager
    def unit_of_work(self):
        raise ConflictTimeoutError("Envelope is busy")
        yield


class _BrokenStore(InMemoryStore):
    def list_envelopes(self, include_inactive: bool = False):
        raise StoreError("Database operation failed")

    def list_transactions(self, query):
        raise RuntimeError("boom")


def test_contention_maps_to_conflict(test_settings: Settings) -> None:
    with TestClient(create_app(store=_BusyStore(), settings=test_settings)) as busy:
        response = _post(busy, envelopeId=1, direction="in", amount=5, who="bob")

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT_TIMEOUT"


def test_store_and_unexpected_failures_map_to_500(test_settings: Settings) -> None:
    app = create_app(store=_BrokenStore(), settings=test_settings)
    with TestClient(app, raise_server_exceptions=False) as broken:
        store_failure = broken.get(f"{API}/envelopes")
        unexpected = broken.get(f"{API}/transactions")

    assert store_failure.status_code == 500
    assert store_failure.json() == {"error": "Database operation failed", "code": "STORE_ERROR"}
    assert unexpected.status_code == 500
    assert unexpected.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}


def test_blank_limit_falls_back_to_default(client: TestClient) -> None:
    env_id = _create_envelope(client, "Limits", 100)["id"]
    for amount in (1, 2, 3):
        _post(client, envelopeId=env_id, direction="in", amount=amount, who="alice")

    blank = client.get(f"{API}/transactions", params={"limit": ""})
    assert blank.status_code == 200
    assert len(blank.json()) == 3

    garbage = client.get(f"{API}/transactions", params={"limit": "ten"})
    assert garbage.status_code == 400
    assert garbage.json()["code"] == "VALIDATION_ERROR"


def test_computed_float_amount_is_accepted(client: TestClient) -> None:
    env_id = _create_envelope(client, "Floats", 0)["id"]

    response = _post(client, envelopeId=env_id, direction="in", amount=0.1 + 0.2, who="alice")

    assert response.status_code == 201
    assert response.json()["tx"]["amount"] == 0.3
    assert response.json()["newBalance"] == 0.3
