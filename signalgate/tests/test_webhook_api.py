import pytest
from fastapi.testclient import TestClient

from signalgate import main
from signalgate.core.errors import PersistenceFailure
from signalgate.runner.models import CycleMode, CycleState
from signalgate.runner.processor import GLOBAL_STATE_KEY


@pytest.fixture
def api(monkeypatch, processor):
    # no context manager: the startup hook (which builds the real processor) never runs
    monkeypatch.setattr(main, "processor_instance", processor)
    return TestClient(main.app)


@pytest.mark.parametrize("body", [{}, [], "buy"])
def test_webhook_rejects_empty_or_non_object_body(api, body):
    r = api.post("/webhook", json=body)
    assert r.status_code == 400
    assert r.json() == {"message": "Empty payload received"}


def test_webhook_rejects_missing_body(api):
    r = api.post("/webhook")
    assert r.status_code == 400


def test_webhook_rejects_blank_signal(api):
    r = api.post("/webhook", json={"signal": "  ", "pair": "ETHUSDT"})
    assert r.status_code == 400
    assert r.json() == {"message": "Missing signal type"}


def test_webhook_processes_ignored_signal(api):
    r = api.post("/webhook", json={"signal": "buy", "pair": "ETHUSDT"})

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Webhook processed"
    assert body["mode"] == "aside_wait_loss"
    assert body["decision"] is None
    assert body["execution"] is None


def test_webhook_accepted_entry_reports_execution(api, processor, fake_client):
    processor.store.save(GLOBAL_STATE_KEY, CycleState(mode=CycleMode.ARMED_WAIT_ENTRY))

    r = api.post("/webhook", json={"signal": "Sell", "pair": "ethusdt"})

    assert r.status_code == 200
    body = r.json()
    assert body["mode"] == "in_trade_wait_outcome"
    assert body["decision"]["type"] == "entry"
    assert body["decision"]["pair"] == "ETHUSDT"
    assert body["decision"]["sizeMultiplier"] == 1
    assert body["execution"]["action"] == "ORDER_PLACED"
    assert fake_client.orders[0]["side"] == "SELL"


def test_webhook_state_store_failure_is_500(api, processor, monkeypatch):
    def broken(payload):
        raise PersistenceFailure("db locked")

    monkeypatch.setattr(processor, "handle", broken)

    r = api.post("/webhook", json={"signal": "buy"})
    assert r.status_code == 500
    assert r.json() == {"message": "Internal server error"}


def test_webhook_unexpected_error_is_500(api, processor, monkeypatch):
    def broken(payload):
        raise RuntimeError("surprise")

    monkeypatch.setattr(processor, "handle", broken)

    r = api.post("/webhook", json={"signal": "buy"})
    assert r.status_code == 500


def test_state_and_recent_alerts(api):
    api.post("/webhook", json={"signal": "sell sl", "pair": "ETHUSDT"})

    states = api.get("/state").json()["states"]
    assert states[GLOBAL_STATE_KEY]["mode"] == "wait_profit_after_loss"

    recent = api.get("/alerts/recent", params={"limit": 5}).json()
    assert recent["count"] == 1
    assert recent["alerts"][0]["payload"]["signal"] == "sell sl"


def test_activity_tail_lists_newest_first(api):
    api.post("/webhook", json={"signal": "sell sl"})
    api.post("/webhook", json={"signal": "sell tp"})

    entries = api.get("/logs/activity/tail").json()["entries"]
    assert [e["mode"] for e in entries] == ["armed_wait_entry", "wait_profit_after_loss"]
    assert all(e["phase"] == "state" for e in entries)


def test_health_and_masked_config(api):
    h = api.get("/health").json()
    assert h["status"] == "ok"
    assert "stream_clients" in h

    cfg = api.get("/debug/config").json()["config"]
    assert cfg["BINANCE_API_KEY"] == "***"
    assert cfg["BINANCE_API_SECRET"] == "***"
