# signalgate/runner/models.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from signalgate.signals.normalizer import Signal


class CycleMode(str, Enum):
    ASIDE_WAIT_LOSS = "aside_wait_loss"  # idle; wait for any SL
    WAIT_PROFIT_AFTER_LOSS = "wait_profit_after_loss"  # saw a loss; wait for any TP
    ARMED_WAIT_ENTRY = "armed_wait_entry"  # loss -> profit seen; take the next entry
    IN_TRADE_WAIT_OUTCOME = "in_trade_wait_outcome"  # in a trade; wait for matching TP/SL
    HALT_UNTIL_TWO_PROFITS = "halt_until_two_profits"  # 3 losses; cool off


VALID_MODES = {m.value for m in CycleMode}

HALT_AFTER_LOSSES = 3
HALT_CLEAR_PROFITS = 2
DOUBLE_AFTER_LOSSES = 2


@dataclass(frozen=True)
class CycleState:
    mode: CycleMode = CycleMode.ASIDE_WAIT_LOSS
    pending_entry: Optional[Signal] = None
    consecutive_losses: int = 0
    size_multiplier: int = 1  # 1 | 2
    halt_profit_count: int = 0

    def is_valid(self) -> bool:
        if not isinstance(self.mode, CycleMode):
            return False
        in_trade = self.mode == CycleMode.IN_TRADE_WAIT_OUTCOME
        if in_trade != (self.pending_entry is not None):
            return False
        if self.pending_entry is not None and self.pending_entry.side is None:
            return False
        if self.consecutive_losses < 0:
            return False
        halted = self.mode == CycleMode.HALT_UNTIL_TWO_PROFITS
        if halted != (self.consecutive_losses >= HALT_AFTER_LOSSES):
            return False
        if self.size_multiplier not in (1, 2):
            return False
        if not 0 <= self.halt_profit_count < HALT_CLEAR_PROFITS:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "pending_entry": self.pending_entry.to_dict() if self.pending_entry else None,
            "consecutive_losses": self.consecutive_losses,
            "size_multiplier": self.size_multiplier,
            "halt_profit_count": self.halt_profit_count,
        }
