# signalgate/symbols/sizing.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from signalgate.core.errors import BelowMinNotional, PriceUnavailable


def _d(x: Any) -> Decimal:
    return Decimal(str(x))


def round_to_precision(x: Any, precision: int) -> Decimal:
    """Half-up rounding to `precision` decimal places (0.0125 @3 -> 0.013)."""
    return _d(x).quantize(Decimal(1).scaleb(-int(precision)), rounding=ROUND_HALF_UP)


@dataclass
class SizeResult:
    qty: float
    notional: float
    details: Dict[str, Any]


def size_order(
    *,
    price: float,
    size_multiplier: int,
    base_margin: float,
    min_notional: float,
    lot_precision: int,
) -> SizeResult:
    """
    Notional is the margin committed before leverage:
      notional = base_margin * size_multiplier
      qty      = round(notional / price, lot_precision)

    Raises BelowMinNotional when the notional is under the exchange minimum.
    A qty that rounds to zero is returned as-is; the order step rejects it.
    """
    px = _d(price)
    if px <= 0:
        raise PriceUnavailable("invalid price", price=float(price))

    notional = _d(base_margin) * _d(int(size_multiplier))
    if notional < _d(min_notional):
        raise BelowMinNotional(
            f"notional {notional} < {min_notional}",
            notional=float(notional),
            min_notional_required=float(min_notional),
            size_multiplier=int(size_multiplier),
        )

    raw_qty = notional / px
    qty = round_to_precision(raw_qty, lot_precision)

    return SizeResult(
        qty=float(qty),
        notional=float(notional),
        details={
            "price": float(px),
            "base_margin": float(base_margin),
            "size_multiplier": int(size_multiplier),
            "notional": float(notional),
            "raw_qty": str(raw_qty),
            "qty": str(qty),
            "lot_precision": int(lot_precision),
            "min_notional_required": float(min_notional),
        },
    )
