# signalgate/policy/cycle_policy.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

from signalgate.runner.models import (
    DOUBLE_AFTER_LOSSES,
    HALT_AFTER_LOSSES,
    HALT_CLEAR_PROFITS,
    CycleMode,
    CycleState,
)
from signalgate.signals.normalizer import Signal, SignalKind


@dataclass(frozen=True)
class AcceptEntry:
    signal: Signal
    size_multiplier: int

    @property
    def event_type(self) -> str:
        return "entry"


@dataclass(frozen=True)
class AcceptOutcome:
    kind: SignalKind  # TAKE_PROFIT | STOP_LOSS
    size_multiplier: int  # multiplier the closed trade was opened with
    entry: Signal  # the pending entry being closed
    signal: Signal  # the outcome alert

    @property
    def event_type(self) -> str:
        return self.kind.value


Decision = Union[AcceptEntry, AcceptOutcome, None]


@dataclass(frozen=True)
class Transition:
    state: CycleState
    decision: Decision
    narrative: str

    @property
    def accepted(self) -> bool:
        return self.decision is not None


def _multiplier_for(losses: int) -> int:
    return 2 if losses >= DOUBLE_AFTER_LOSSES else 1


def repair(state: Optional[CycleState]) -> CycleState:
    """Malformed or missing state -> AsideWaitLoss with every counter zeroed."""
    if state is None or not state.is_valid():
        return CycleState()
    return state


def _noop(state: CycleState, narrative: str) -> Transition:
    return Transition(state, None, narrative)


def _aside_wait_loss(st: CycleState, sig: Signal) -> Transition:
    if sig.kind == SignalKind.STOP_LOSS:
        return Transition(
            replace(st, mode=CycleMode.WAIT_PROFIT_AFTER_LOSS),
            None,
            "Loss observed; waiting for profit close to arm.",
        )
    return _noop(st, "Aside: waiting for a loss (SL) before arming.")


def _wait_profit_after_loss(st: CycleState, sig: Signal) -> Transition:
    if sig.kind == SignalKind.TAKE_PROFIT:
        mult = _multiplier_for(st.consecutive_losses)
        return Transition(
            replace(st, mode=CycleMode.ARMED_WAIT_ENTRY, size_multiplier=mult),
            None,
            f"Armed (x{mult}): waiting for the very next entry (buy/sell).",
        )
    return _noop(st, "Waiting for profit close (TP) to arm.")


def _armed_wait_entry(st: CycleState, sig: Signal) -> Transition:
    if sig.is_entry:
        return Transition(
            replace(st, mode=CycleMode.IN_TRADE_WAIT_OUTCOME, pending_entry=sig),
            AcceptEntry(signal=sig, size_multiplier=st.size_multiplier),
            "Entry accepted; waiting for this trade outcome.",
        )
    return _noop(st, "Armed: waiting for next entry.")


def _in_trade_wait_outcome(st: CycleState, sig: Signal) -> Transition:
    entry = st.pending_entry
    matches = sig.is_outcome and sig.side is not None and sig.side == entry.side

    if not matches:
        if sig.is_entry:
            return _noop(
                st, "Still in a trade; ignoring new entry until the current trade closes."
            )
        return _noop(st, "In-trade: signal not related to current trade outcome.")

    decision = AcceptOutcome(
        kind=sig.kind, size_multiplier=st.size_multiplier, entry=entry, signal=sig
    )

    if sig.kind == SignalKind.TAKE_PROFIT:
        return Transition(
            CycleState(mode=CycleMode.ASIDE_WAIT_LOSS),
            decision,
            "Trade closed in profit -> reset; waiting for next loss (SL).",
        )

    losses = st.consecutive_losses + 1
    if losses >= HALT_AFTER_LOSSES:
        return Transition(
            CycleState(
                mode=CycleMode.HALT_UNTIL_TWO_PROFITS,
                consecutive_losses=losses,
                size_multiplier=1,
                halt_profit_count=0,
            ),
            decision,
            f"Trade closed in loss ({losses} in a row) -> halted until "
            f"{HALT_CLEAR_PROFITS} profit closes.",
        )

    mult = _multiplier_for(losses)
    return Transition(
        CycleState(
            mode=CycleMode.WAIT_PROFIT_AFTER_LOSS,
            consecutive_losses=losses,
            size_multiplier=mult,
            halt_profit_count=st.halt_profit_count,
        ),
        decision,
        f"Trade closed in loss ({losses} in a row) -> waiting for next profit "
        f"close (TP) to arm.",
    )


def _halt_until_two_profits(st: CycleState, sig: Signal) -> Transition:
    if sig.kind != SignalKind.TAKE_PROFIT:
        return _noop(st, "Halted: waiting for profit closes (TP) to resume.")

    profits = st.halt_profit_count + 1
    if profits >= HALT_CLEAR_PROFITS:
        return Transition(
            CycleState(mode=CycleMode.ASIDE_WAIT_LOSS),
            None,
            "Halt cleared; waiting for a loss (SL) before arming.",
        )
    return Transition(
        replace(st, halt_profit_count=profits),
        None,
        f"Halted: {profits}/{HALT_CLEAR_PROFITS} profit closes observed.",
    )


_HANDLERS = {
    CycleMode.ASIDE_WAIT_LOSS: _aside_wait_loss,
    CycleMode.WAIT_PROFIT_AFTER_LOSS: _wait_profit_after_loss,
    CycleMode.ARMED_WAIT_ENTRY: _armed_wait_entry,
    CycleMode.IN_TRADE_WAIT_OUTCOME: _in_trade_wait_outcome,
    CycleMode.HALT_UNTIL_TWO_PROFITS: _halt_until_two_profits,
}


def transition(state: Optional[CycleState], signal: Signal) -> Transition:
    """
    Pure policy brain: (state, signal) -> (state', decision, narrative).

    - Repairs malformed state before applying the signal
    - Never raises; unrelated signals leave state untouched
    - A decision is produced only on an accepted entry or a matching outcome

    Caller should:
      - persist Transition.state
      - hand Transition.decision to the executor
    """
    st = repair(state)

    if signal.kind == SignalKind.UNKNOWN:
        return _noop(st, f"Unrecognized signal '{signal.text}'; ignored.")

    return _HANDLERS[st.mode](st, signal)
