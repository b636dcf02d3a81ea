from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from signalgate.core.config import Settings, settings as default_settings
from signalgate.core.errors import (
    ExchangeError,
    ExecutionError,
    InvalidQuantity,
    LeverageSetFailed,
    OrderFailed,
    PositionQueryFailed,
    PriceUnavailable,
)
from signalgate.policy.cycle_policy import AcceptEntry, AcceptOutcome, Decision
from signalgate.signals.normalizer import Side
from signalgate.symbols.sizing import SizeResult, round_to_precision, size_order

log = logging.getLogger("signalgate.executor")

# what the exchange client raises for a failed/garbled call
_CALL_ERRORS = (ExchangeError, KeyError, TypeError, ValueError)


# =========================
# Execution Result
# =========================
@dataclass
class ExecResult:
    action: str
    details: dict


def _opposite(side: Side) -> Side:
    return Side.SELL if side == Side.BUY else Side.BUY


# =========================
# Binance Executor
# =========================
class BinanceExecutor:
    """
    Turns an accepted decision into exchange orders.

    Every failure is absorbed: execute() logs it, reports it to the sink and
    returns an ExecResult describing what was skipped. The caller's state
    transition has already been committed and is never rolled back.
    """

    def __init__(self, client, cfg: Optional[Settings] = None, *, sink=None):
        self.client = client
        self.settings = cfg or default_settings
        self.sink = sink
        # symbol -> leverage last set; process-local
        self.leverage_cache: Dict[str, int] = {}

    # ---------------- INTERNAL HELPERS ----------------

    def _warn(self, symbol: str, action: str, details: dict) -> None:
        log.warning("%s %s: %s", symbol, action, details)
        if self.sink is None:
            return
        try:
            self.sink.emit_warning({"symbol": symbol, "action": action, **details})
        except Exception:
            log.exception("failed to record execution warning")

    # ---------------- BUILDING BLOCKS ----------------

    def quote(self, symbol: str) -> float:
        try:
            price = float(self.client.last_price(symbol))
        except _CALL_ERRORS as e:
            raise PriceUnavailable(f"price lookup failed for {symbol}: {e}", symbol=symbol) from e

        # NaN fails both comparisons
        if not price > 0:
            raise PriceUnavailable(f"non-positive price for {symbol}: {price}", symbol=symbol)
        return price

    def ensure_leverage(self, symbol: str, size_multiplier: int) -> int:
        lev = self.settings.leverage_for_multiplier(size_multiplier)
        sym = symbol.upper()
        if self.leverage_cache.get(sym) == lev:
            return lev

        try:
            self.client.set_leverage(sym, lev)
        except _CALL_ERRORS as e:
            raise LeverageSetFailed(
                f"failed to set leverage {lev}x for {sym}: {e}", symbol=sym, leverage=lev
            ) from e

        self.leverage_cache[sym] = lev
        log.info("leverage set to %sx for %s", lev, sym)
        return lev

    def size_order(self, size_multiplier: int, price: float) -> SizeResult:
        return size_order(
            price=price,
            size_multiplier=size_multiplier,
            base_margin=self.settings.BASE_MARGIN_USDT,
            min_notional=self.settings.MIN_NOTIONAL_USDT,
            lot_precision=self.settings.LOT_PRECISION,
        )

    def open_position(self, symbol: str, side: Side, quantity: float) -> dict:
        if not quantity > 0:
            raise InvalidQuantity(
                f"invalid quantity {quantity} for {side.value} {symbol}",
                symbol=symbol,
                qty=quantity,
            )
        try:
            order = self.client.place_market_order(symbol, side.value.upper(), quantity)
        except _CALL_ERRORS as e:
            raise OrderFailed(
                f"{side.value.upper()} MARKET order failed on {symbol}: {e}",
                symbol=symbol,
                side=side.value,
                qty=quantity,
            ) from e

        avg_price = order.get("avgPrice") if isinstance(order, dict) else None
        log.info(
            "%s MARKET order sent on %s qty=%s price=%s",
            side.value.upper(),
            symbol,
            quantity,
            avg_price or "MKT",
        )
        return order

    def close_position(self, symbol: str, entry_side: Side) -> ExecResult:
        """
        Close the live position opened by `entry_side`, sized to the full
        absolute amount on the exchange. Buy expects long (> eps),
        Sell expects short (< -eps); anything else sends nothing.
        """
        try:
            amt = float(self.client.get_position_amt(symbol))
        except _CALL_ERRORS as e:
            raise PositionQueryFailed(
                f"position query failed for {symbol}: {e}", symbol=symbol
            ) from e

        eps = float(self.settings.POSITION_EPSILON)
        direction = "long" if entry_side == Side.BUY else "short"
        has_position = amt > eps if entry_side == Side.BUY else amt < -eps

        if not has_position:
            log.warning("no %s position to close for %s (amt=%s)", direction.upper(), symbol, amt)
            return ExecResult(
                "NO_POSITION_TO_CLOSE",
                {"symbol": symbol, "expected": direction, "pos_amt": amt},
            )

        qty = float(round_to_precision(abs(amt), self.settings.LOT_PRECISION))
        close_side = _opposite(entry_side)
        if not qty > 0:
            raise InvalidQuantity(
                f"{direction} position on {symbol} rounds to zero (amt={amt})",
                symbol=symbol,
                pos_amt=amt,
                qty=qty,
            )
        try:
            order = self.client.place_market_order(
                symbol, close_side.value.upper(), qty, reduce_only=True
            )
        except _CALL_ERRORS as e:
            raise OrderFailed(
                f"close {direction} on {symbol} failed: {e}",
                symbol=symbol,
                side=close_side.value,
                qty=qty,
            ) from e

        log.info("closed %s on %s qty=%s", direction.upper(), symbol, qty)
        return ExecResult(
            "CLOSED_POSITION",
            {
                "symbol": symbol,
                "position_before": direction.upper(),
                "pos_amt_before": amt,
                "side": close_side.value.upper(),
                "qty": qty,
                "order": order,
            },
        )

    # ---------------- EXECUTION ----------------

    def _enter(self, decision: AcceptEntry) -> ExecResult:
        sig = decision.signal
        symbol = sig.pair or self.settings.DEFAULT_PAIR
        mult = decision.size_multiplier

        price = self.quote(symbol)

        # leverage failure does not block the entry order
        try:
            lev_info = {"leverage": self.ensure_leverage(symbol, mult)}
        except LeverageSetFailed as e:
            self._warn(symbol, "LEVERAGE_SET_FAILED", {"error": str(e), **e.details})
            lev_info = {"leverage": None, "leverage_error": str(e)}

        sizing = self.size_order(mult, price)
        order = self.open_position(symbol, sig.side, sizing.qty)

        return ExecResult(
            "ORDER_PLACED",
            {
                "symbol": symbol,
                "side": sig.side.value.upper(),
                "qty": sizing.qty,
                "size_multiplier": mult,
                **lev_info,
                "sizing": sizing.details,
                "order": order,
            },
        )

    def _exit(self, decision: AcceptOutcome) -> ExecResult:
        entry = decision.entry
        symbol = entry.pair or decision.signal.pair or self.settings.DEFAULT_PAIR
        res = self.close_position(symbol, entry.side)
        res.details["outcome"] = decision.kind.value
        return res

    def execute(self, decision: Decision) -> ExecResult:
        if decision is None:
            return ExecResult("NO_TRADE", {"reason": "no_decision"})

        if isinstance(decision, AcceptEntry):
            symbol = decision.signal.pair or self.settings.DEFAULT_PAIR
            action = f"OPEN_{'LONG' if decision.signal.side == Side.BUY else 'SHORT'}"
        else:
            symbol = decision.entry.pair or self.settings.DEFAULT_PAIR
            action = f"CLOSE_{decision.kind.value.upper()}"

        # Paper / dry-run mode
        if not self.settings.is_live:
            log.info("paper mode: would %s on %s (x%s)", action, symbol, decision.size_multiplier)
            return ExecResult(
                "PAPER_ONLY",
                {"symbol": symbol, "intent": action, "size_multiplier": decision.size_multiplier},
            )

        try:
            if isinstance(decision, AcceptEntry):
                return self._enter(decision)
            return self._exit(decision)
        except ExecutionError as e:
            details = {"intent": action, "error": str(e), **e.details}
            self._warn(symbol, e.action, details)
            return ExecResult(e.action, {"symbol": symbol, **details})
