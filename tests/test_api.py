import os
import time

import pytest
from fastapi.testclient import TestClient

# Unit tests inject their own engine; never build one from config/config.yaml.
os.environ.setdefault("ESCROWTRADER_DISABLE_ENGINE", "1")

import escrowtrader.api.app as app_module
from escrowtrader.api.app import app

from conftest import ADMIN, CUSTODIAN


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(app_module, "_engine", engine)
    return TestClient(app)


def _as(principal):
    return {"X-Principal": principal}


def test_api_health_ok(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["market_initialized"] is True


def test_api_health_degraded_without_engine(monkeypatch):
    monkeypatch.setattr(app_module, "_engine", None)
    resp = TestClient(app).get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"


def test_api_trade_lifecycle(client):
    resp = client.post("/api/escrow/deposit", json={"amount": 1000}, headers=_as("alice"))
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "result": {"balance": 1000}}

    resp = client.post("/api/commodities", json={"commodity_id": 1, "quantity": 500, "price": 10}, headers=_as(ADMIN))
    assert resp.status_code == 200
    assert resp.json()["result"]["owner"] == ADMIN

    resp = client.post("/api/positions", json={"commodity_id": 1, "quantity": 100, "position_id": 1}, headers=_as("alice"))
    assert resp.status_code == 200
    assert resp.json()["result"]["entry_price"] == 10

    assert client.get("/api/escrow/alice").json()["result"]["balance"] == 0
    resp = client.get("/api/positions/alice/1")
    assert resp.status_code == 200
    assert resp.json()["result"]["quantity"] == 100

    resp = client.delete("/api/positions/1", headers=_as("alice"))
    assert resp.status_code == 200
    assert resp.json()["result"]["amount"] == 1000

    assert client.get("/api/escrow/alice").json()["result"]["balance"] == 1000
    resp = client.get("/api/positions/alice/1")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_api_errors_are_tagged(client):
    resp = client.post("/api/market/toggle", headers=_as("alice"))
    assert resp.status_code == 403
    assert resp.json() == {
        "ok": False,
        "error": {
            "code": "UNAUTHORIZED",
            "legacy_code": "UNAUTHORIZED",
            "message": "'alice' is not the market administrator",
        },
    }


def test_api_close_missing_position_keeps_legacy_code(client):
    resp = client.delete("/api/positions/9", headers=_as("alice"))
    assert resp.status_code == 404
    error = resp.json()["error"]
    assert error["code"] == "POSITION_NOT_FOUND"
    assert error["legacy_code"] == "INVALID_TRADE_QUANTITY"


def test_api_trading_disabled(client):
    client.post("/api/escrow/deposit", json={"amount": 1000}, headers=_as("alice"))
    client.post("/api/commodities", json={"commodity_id": 1, "quantity": 500, "price": 10}, headers=_as(ADMIN))
    resp = client.post("/api/market/toggle", headers=_as(ADMIN))
    assert resp.json()["result"] == {"trading_enabled": False}

    resp = client.post("/api/positions", json={"commodity_id": 1, "quantity": 100, "position_id": 1}, headers=_as("alice"))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "TRADING_DISABLED"
    assert client.get("/api/escrow/alice").json()["result"]["balance"] == 1000


def test_api_withdraw_insufficient(client):
    client.post("/api/escrow/deposit", json={"amount": 100}, headers=_as("alice"))
    resp = client.post("/api/escrow/withdraw", json={"amount": 101}, headers=_as("alice"))
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "INSUFFICIENT_ESCROW_BALANCE"


def test_api_deposit_transfer_failure(client):
    resp = client.post("/api/escrow/deposit", json={"amount": 100}, headers=_as("carol"))
    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "ESCROW_TRANSACTION_FAILED"


def test_api_rejects_negative_amounts_and_missing_principal(client):
    resp = client.post("/api/escrow/deposit", json={"amount": -5}, headers=_as("alice"))
    assert resp.status_code == 422
    resp = client.post("/api/escrow/deposit", json={"amount": 5})
    assert resp.status_code == 422


def test_api_initialize_only_once(client):
    resp = client.post("/api/initialize", json={"administrator": "mallory"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "ALREADY_INITIALIZED"
    assert client.get("/api/market").json()["result"]["administrator"] == ADMIN


def test_api_market_admin_operations(client):
    assert client.post("/api/market/oracle", json={"address": "feed-1"}, headers=_as(ADMIN)).status_code == 200
    resp = client.post("/api/market/min-trade-quantity", json={"min_trade_quantity": 3}, headers=_as(ADMIN))
    assert resp.status_code == 200
    market = client.get("/api/market").json()["result"]
    assert market["oracle_address"] == "feed-1"
    assert market["min_trade_quantity"] == 3


def test_api_history_and_audit(client):
    client.post("/api/escrow/deposit", json={"amount": 1000}, headers=_as("alice"))
    client.post("/api/commodities", json={"commodity_id": 1, "quantity": 500, "price": 10}, headers=_as(ADMIN))
    client.post("/api/positions", json={"commodity_id": 1, "quantity": 50, "position_id": 1}, headers=_as("alice"))

    events = client.get("/api/history/events", params={"trader": "alice"}).json()
    assert [e["kind"] for e in events] == ["TRADE_OPEN", "DEPOSIT"]

    trades = client.get("/api/history/trades", params={"limit": 10}).json()
    assert len(trades) == 1
    assert trades[0]["action"] == "OPEN"
    assert trades[0]["amount"] == 500

    report = client.get("/api/audit/reconcile").json()
    assert report["ok"] is True

    positions = client.get("/api/positions/alice").json()["result"]
    assert [p["position_id"] for p in positions] == [1]


def test_api_unknown_commodity_is_404(client):
    resp = client.get("/api/commodities/77")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_api_escrow_account_shape(client):
    client.post("/api/escrow/deposit", json={"amount": 250}, headers=_as("alice"))
    resp = client.get("/api/escrow/alice")
    assert resp.json() == {"ok": True, "result": {"owner": "alice", "balance": 250}}


def test_api_rejects_out_of_range_path_ids(client):
    too_big = str(2**64)
    assert client.get(f"/api/commodities/{too_big}").status_code == 422
    assert client.get(f"/api/positions/alice/{too_big}").status_code == 422
    assert client.delete(f"/api/positions/{too_big}", headers=_as("alice")).status_code == 422
    assert client.get("/api/commodities/-1").status_code == 422


def test_api_without_engine_returns_tagged_503(monkeypatch):
    monkeypatch.setattr(app_module, "_engine", None)
    resp = TestClient(app).get("/api/market")
    assert resp.status_code == 503
    assert resp.json()["ok"] is False
    assert resp.json()["error"]["code"] == "ENGINE_UNAVAILABLE"


def test_api_slow_read_times_out_with_tagged_503(client, engine, monkeypatch):
    monkeypatch.setattr(app_module, "_READ_TIMEOUT_SECONDS", 0.05)
    real = engine.get_market_state

    def _slow_market_state():
        state = real()
        time.sleep(0.3)
        return state

    monkeypatch.setattr(engine, "get_market_state", _slow_market_state)
    resp = client.get("/api/market")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "ENGINE_UNAVAILABLE"


def test_api_slow_deposit_reports_committed_outcome(client, rail, monkeypatch):
    monkeypatch.setattr(app_module, "_READ_TIMEOUT_SECONDS", 0.05)
    real = rail.transfer

    def _slow_transfer(sender, recipient, amount):
        time.sleep(0.3)
        return real(sender, recipient, amount)

    monkeypatch.setattr(rail, "transfer", _slow_transfer)
    resp = client.post("/api/escrow/deposit", json={"amount": 100}, headers=_as("alice"))
    assert resp.status_code == 200
    assert resp.json()["result"] == {"balance": 100}
    assert rail.balance_of(CUSTODIAN) == 100
