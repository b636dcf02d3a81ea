import pytest

from signalgate.core.config import Settings
from signalgate.core.errors import ExchangeError
from signalgate.events.sink import EventSink
from signalgate.execution.executor import BinanceExecutor
from signalgate.persistence.activity_log import ActivityLog
from signalgate.persistence.db import DB
from signalgate.runner.processor import AlertProcessor


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    """
    Ensure tests never hit live trading accidentally.
    """
    monkeypatch.setenv("EXECUTION_MODE", "paper")
    monkeypatch.setenv("BINANCE_ENV", "testnet")
    monkeypatch.setenv("BINANCE_API_KEY", "")
    monkeypatch.setenv("BINANCE_API_SECRET", "")


class FakeClient:
    """Minimal fake Binance client: records calls, no network."""

    def __init__(self, *, price=2000.0, pos_amt=0.0):
        self.price = price
        self.pos_amt = pos_amt
        self.fail = set()  # names of methods that should raise
        self.orders = []
        self.leverage_calls = []
        self.position_calls = 0

    def _maybe_fail(self, name):
        if name in self.fail:
            raise ExchangeError(f"{name} boom", status_code=500)

    def last_price(self, symbol):
        self._maybe_fail("last_price")
        return self.price

    def set_leverage(self, symbol, leverage):
        self._maybe_fail("set_leverage")
        self.leverage_calls.append((symbol, leverage))
        return {"symbol": symbol, "leverage": leverage}

    def place_market_order(self, symbol, side, quantity, reduce_only=False):
        self._maybe_fail("place_market_order")
        self.orders.append(
            {"symbol": symbol, "side": side, "quantity": quantity, "reduce_only": reduce_only}
        )
        return {"orderId": len(self.orders), "status": "NEW"}

    def get_position_amt(self, symbol):
        self._maybe_fail("get_position_amt")
        self.position_calls += 1
        return self.pos_amt


def make_settings(**overrides) -> Settings:
    base = dict(
        EXECUTION_MODE="live",
        BINANCE_ENV="testnet",
        BINANCE_API_KEY="key",
        BINANCE_API_SECRET="secret",
        DEFAULT_PAIR="ETHUSDT",
        BASE_MARGIN_USDT=20.0,
        MIN_NOTIONAL_USDT=20.0,
        LOT_PRECISION=3,
        LEVERAGE_HIGH=20,
        LEVERAGE_LOW=10,
    )
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def live_settings():
    return make_settings()


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def activity(tmp_path):
    return ActivityLog(str(tmp_path / "logs" / "activity.jsonl"))


@pytest.fixture
def events():
    return []


@pytest.fixture
def sink(activity, events):
    return EventSink(activity, [events.append])


@pytest.fixture
def db(tmp_path):
    return DB(str(tmp_path / "data" / "test.db"))


@pytest.fixture
def processor(db, sink, fake_client, live_settings):
    executor = BinanceExecutor(fake_client, live_settings, sink=sink)
    return AlertProcessor(db=db, executor=executor, sink=sink, cfg=live_settings)
