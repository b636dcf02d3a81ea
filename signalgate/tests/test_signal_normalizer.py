import pytest

from signalgate.core.errors import InvalidSignal
from signalgate.signals.normalizer import (
    Side,
    Signal,
    SignalKind,
    classify,
    normalize,
    signal_from_alert,
)


def test_normalize_folds_case_and_whitespace():
    assert normalize("  BUY   TP ") == "buy tp"
    assert normalize("Sell\t\nSL") == "sell sl"


@pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
def test_normalize_empty_raises(raw):
    with pytest.raises(InvalidSignal):
        normalize(raw)


@pytest.mark.parametrize(
    "text,kind,side",
    [
        ("buy", SignalKind.ENTRY, Side.BUY),
        ("SELL", SignalKind.ENTRY, Side.SELL),
        ("buy tp", SignalKind.TAKE_PROFIT, Side.BUY),
        ("Sell  SL", SignalKind.STOP_LOSS, Side.SELL),
        ("hedge tp", SignalKind.TAKE_PROFIT, None),
        ("close all", SignalKind.UNKNOWN, None),
        ("buytp", SignalKind.UNKNOWN, None),
    ],
)
def test_classify(text, kind, side):
    sig = classify(text)
    assert sig.kind == kind
    assert sig.side == side


def test_unknown_is_neither_entry_nor_outcome():
    sig = classify("flat")
    assert not sig.is_entry
    assert not sig.is_outcome


def test_signal_from_alert_splits_extra_fields():
    sig = signal_from_alert(
        {"signal": " Buy ", "pair": "ethusdt", "timestamp": "t1", "price": 1234.5, "tf": "5m"},
        default_pair="BTCUSDT",
    )
    assert sig.kind == SignalKind.ENTRY
    assert sig.side == Side.BUY
    assert sig.pair == "ETHUSDT"
    assert sig.timestamp == "t1"
    assert sig.extra == {"price": 1234.5, "tf": "5m"}

    fields = sig.alert_fields()
    assert fields["signal"] == "buy"
    assert fields["price"] == 1234.5


def test_signal_from_alert_defaults_pair_and_timestamp():
    sig = signal_from_alert({"signal": "sell sl"}, default_pair="ETHUSDT")
    assert sig.pair == "ETHUSDT"
    assert sig.timestamp


def test_signal_from_alert_rejects_empty_payload_and_missing_signal():
    with pytest.raises(InvalidSignal):
        signal_from_alert({}, default_pair="ETHUSDT")
    with pytest.raises(InvalidSignal):
        signal_from_alert({"pair": "ETHUSDT"}, default_pair="ETHUSDT")


def test_signal_dict_roundtrip_keeps_side_and_extra():
    sig = classify("sell", pair="ETHUSDT", timestamp="t", extra={"id": 7})
    assert Signal.from_dict(sig.to_dict()) == sig
