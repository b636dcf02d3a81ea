from __future__ import annotations


class SignalGateError(Exception):
    pass


class InvalidSignal(SignalGateError):
    """Alert is empty or carries no signal text. Rejected at ingestion."""


class PersistenceFailure(SignalGateError):
    """State store unavailable. Fatal to the alert being handled."""


class ExchangeError(RuntimeError):
    """HTTP or transport failure talking to the exchange."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# =========================
# Execution errors (non-fatal)
# =========================
class ExecutionError(SignalGateError):
    # ExecResult.action used when this error skips an action
    action = "FAILED"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.details = details


class PriceUnavailable(ExecutionError):
    action = "SKIPPED_PRICE_UNAVAILABLE"


class BelowMinNotional(ExecutionError):
    action = "SKIPPED_MIN_NOTIONAL"


class InvalidQuantity(ExecutionError):
    action = "SKIPPED_INVALID_QTY"


class LeverageSetFailed(ExecutionError):
    action = "FAILED_LEVERAGE"


class OrderFailed(ExecutionError):
    action = "FAILED_ORDER"


class PositionQueryFailed(ExecutionError):
    action = "FAILED_POSITION_QUERY"
