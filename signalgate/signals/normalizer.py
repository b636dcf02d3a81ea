# signalgate/signals/normalizer.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from signalgate.core.errors import InvalidSignal

_WS = re.compile(r"\s+")


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class SignalKind(str, Enum):
    ENTRY = "entry"
    TAKE_PROFIT = "tp"
    STOP_LOSS = "sl"
    UNKNOWN = "unknown"


OUTCOME_KINDS = (SignalKind.TAKE_PROFIT, SignalKind.STOP_LOSS)


@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    side: Optional[Side]
    text: str  # normalized signal text, e.g. "buy tp"
    pair: str = ""
    timestamp: str = ""
    # every other alert field, passed through untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_entry(self) -> bool:
        return self.kind == SignalKind.ENTRY

    @property
    def is_outcome(self) -> bool:
        return self.kind in OUTCOME_KINDS

    def alert_fields(self) -> Dict[str, Any]:
        """Alert as received: extra fields plus signal/pair/timestamp."""
        out = dict(self.extra)
        out["signal"] = self.text
        if self.pair:
            out["pair"] = self.pair
        if self.timestamp:
            out["timestamp"] = self.timestamp
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "side": self.side.value if self.side else None,
            "text": self.text,
            "pair": self.pair,
            "timestamp": self.timestamp,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Signal":
        side = d.get("side")
        return cls(
            kind=SignalKind(d["kind"]),
            side=Side(side) if side else None,
            text=str(d.get("text") or ""),
            pair=str(d.get("pair") or ""),
            timestamp=str(d.get("timestamp") or ""),
            extra=dict(d.get("extra") or {}),
        )


def normalize(raw: Any) -> str:
    """
    Lower-case, trim, collapse whitespace runs to one space.
    Raises InvalidSignal when nothing is left.
    """
    text = _WS.sub(" ", str(raw if raw is not None else "")).strip().lower()
    if not text:
        raise InvalidSignal("Missing signal type")
    return text


def _side(word: str) -> Optional[Side]:
    try:
        return Side(word)
    except ValueError:
        return None


def classify(
    text: str,
    *,
    pair: str = "",
    timestamp: str = "",
    extra: Optional[Mapping[str, Any]] = None,
) -> Signal:
    """
    "buy" / "sell"        -> ENTRY with that side
    "<side> tp|sl"        -> TAKE_PROFIT / STOP_LOSS, side from the prefix
    anything else         -> UNKNOWN (never actionable)
    """
    text = normalize(text)
    extra = dict(extra or {})

    side = _side(text)
    if side is not None:
        return Signal(SignalKind.ENTRY, side, text, pair, timestamp, extra)

    if text.endswith(" tp") or text.endswith(" sl"):
        prefix, suffix = text.rsplit(" ", 1)
        kind = SignalKind.TAKE_PROFIT if suffix == "tp" else SignalKind.STOP_LOSS
        return Signal(kind, _side(prefix), text, pair, timestamp, extra)

    return Signal(SignalKind.UNKNOWN, None, text, pair, timestamp, extra)


def signal_from_alert(payload: Mapping[str, Any], default_pair: str) -> Signal:
    """Build a Signal from an inbound alert body."""
    if not payload:
        raise InvalidSignal("Empty payload received")

    text = normalize(payload.get("signal"))
    pair = str(payload.get("pair") or default_pair or "").strip().upper()

    ts = payload.get("timestamp")
    timestamp = str(ts) if ts not in (None, "") else datetime.now(timezone.utc).isoformat()

    extra = {
        k: v for k, v in payload.items() if k not in ("signal", "pair", "timestamp")
    }
    return classify(text, pair=pair, timestamp=timestamp, extra=extra)
