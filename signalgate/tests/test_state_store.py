import json

import pytest

from signalgate.core.errors import PersistenceFailure
from signalgate.persistence.alerts import record_alert, recent_alerts, trim_alerts
from signalgate.persistence.db import DB
from signalgate.persistence.state_store import StateStore
from signalgate.runner.models import CycleMode, CycleState
from signalgate.signals.normalizer import classify


def test_missing_record_loads_as_none(db):
    assert StateStore(db).load("GLOBAL") is None


def test_save_then_load_in_trade_state(db):
    store = StateStore(db)
    st = CycleState(
        mode=CycleMode.IN_TRADE_WAIT_OUTCOME,
        pending_entry=classify("sell", pair="ETHUSDT", timestamp="t", extra={"strategy": "s1"}),
        consecutive_losses=2,
        size_multiplier=2,
    )

    store.save("GLOBAL", st)
    store.save("GLOBAL", st)  # upsert, not a second row

    assert store.load("GLOBAL") == st
    assert list(store.load_all()) == ["GLOBAL"]


def test_state_survives_a_new_connection(tmp_path):
    path = str(tmp_path / "state.db")
    StateStore(DB(path)).save("ETHUSDT", CycleState(mode=CycleMode.ARMED_WAIT_ENTRY))

    again = StateStore(DB(path)).load("ETHUSDT")

    assert again.mode == CycleMode.ARMED_WAIT_ENTRY


def test_ensure_creates_default(db):
    store = StateStore(db)
    assert store.ensure("GLOBAL") == CycleState()
    assert store.load("GLOBAL") == CycleState()


def test_ensure_keeps_valid_record(db):
    store = StateStore(db)
    st = CycleState(mode=CycleMode.HALT_UNTIL_TWO_PROFITS, consecutive_losses=3, halt_profit_count=1)
    store.save("GLOBAL", st)

    assert store.ensure("GLOBAL") == st


def test_ensure_repairs_invariant_violation(db):
    store = StateStore(db)
    with db.connect() as conn:
        conn.execute(
            "INSERT INTO cycle_state(state_key, mode, size_multiplier, updated_at) VALUES (?,?,?,?)",
            ("GLOBAL", "armed_wait_entry", 5, "t"),
        )

    assert store.ensure("GLOBAL") == CycleState()
    assert store.load("GLOBAL") == CycleState()


def test_ensure_repairs_loss_streak_outside_halt(db):
    store = StateStore(db)
    store.save("GLOBAL", CycleState(mode=CycleMode.WAIT_PROFIT_AFTER_LOSS, consecutive_losses=5))

    assert store.ensure("GLOBAL") == CycleState()
    assert store.load("GLOBAL") == CycleState()


def test_bad_pending_json_is_undecodable(db):
    with db.connect() as conn:
        conn.execute(
            "INSERT INTO cycle_state(state_key, mode, pending_entry_json, updated_at) VALUES (?,?,?,?)",
            ("GLOBAL", "in_trade_wait_outcome", "{oops", "t"),
        )
    store = StateStore(db)

    assert store.load("GLOBAL") is None
    assert store.load_all() == {"GLOBAL": CycleState()}


def test_unreadable_database_raises_persistence_failure(tmp_path):
    db = DB(str(tmp_path / "x.db"))
    db.path = str(tmp_path / "missing-dir" / "x.db")

    with pytest.raises(PersistenceFailure):
        StateStore(db).load("GLOBAL")


def test_alert_records_keep_the_raw_payload(db):
    payload = {"signal": "Buy TP", "pair": "ethusdt", "note": {"a": 1}}
    rid = record_alert(db, payload)

    rows = recent_alerts(db, 5)
    assert rows[0]["id"] == rid
    assert rows[0]["payload"] == payload

    with db.connect() as conn:
        raw = conn.execute("SELECT payload_json FROM alerts WHERE id = ?", (rid,)).fetchone()[0]
    assert json.loads(raw)["signal"] == "Buy TP"


def test_trim_keeps_newest(db):
    for i in range(6):
        record_alert(db, {"signal": "x", "i": i})

    assert trim_alerts(db, 4) == 2
    assert trim_alerts(db, 4) == 0
    assert [r["payload"]["i"] for r in recent_alerts(db, 10)] == [5, 4, 3, 2]
