from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from signalgate.core.config import Settings, settings as default_settings
from signalgate.events.sink import EventSink
from signalgate.execution.executor import BinanceExecutor, ExecResult
from signalgate.persistence.alerts import record_alert, trim_alerts
from signalgate.persistence.db import DB
from signalgate.persistence.state_store import StateStore
from signalgate.policy.cycle_policy import Decision, transition
from signalgate.runner.models import CycleMode, CycleState
from signalgate.signals.normalizer import Signal, signal_from_alert

log = logging.getLogger("signalgate.processor")

GLOBAL_STATE_KEY = "GLOBAL"


@dataclass
class HandleResult:
    state_key: str
    mode: CycleMode
    info: str
    decision: Decision = None
    event: Optional[Dict[str, Any]] = None
    execution: Optional[ExecResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state_key": self.state_key,
            "mode": self.mode.value,
            "info": self.info,
            "decision": self.event,
            "execution": (
                {"action": self.execution.action, "details": self.execution.details}
                if self.execution
                else None
            ),
        }


class AlertProcessor:
    """
    One alert -> normalize -> transition -> persist -> events -> execute.

    The read -> decide -> persist -> execute span runs under a lock keyed by
    the state key, so concurrent alerts for the same key are applied one at
    a time and can never both be accepted against the same state.
    """

    def __init__(
        self,
        *,
        db: DB,
        executor: BinanceExecutor,
        sink: EventSink,
        cfg: Optional[Settings] = None,
    ):
        self.db = db
        self.store = StateStore(db)
        self.executor = executor
        self.sink = sink
        self.settings = cfg or default_settings

        self._state_locks = defaultdict(threading.Lock)  # state key -> Lock
        self._locks_guard = threading.Lock()

    # ---------------- keys / locks ----------------

    def state_key(self, signal: Signal) -> str:
        if self.settings.STATE_SCOPE == "pair":
            return signal.pair or self.settings.DEFAULT_PAIR
        return GLOBAL_STATE_KEY

    @contextmanager
    def key_guard(self, key: str):
        with self._locks_guard:
            lock = self._state_locks[key]
        with lock:
            yield

    # ---------------- lifecycle ----------------

    def startup(self) -> CycleState:
        """Create (or repair) the live state record for the default key."""
        key = (
            self.settings.DEFAULT_PAIR
            if self.settings.STATE_SCOPE == "pair"
            else GLOBAL_STATE_KEY
        )
        with self.key_guard(key):
            return self.store.ensure(key)

    # ---------------- raw alert bookkeeping ----------------

    def _record_raw(self, payload: Mapping[str, Any]) -> None:
        try:
            record_alert(self.db, payload)
        except (sqlite3.Error, TypeError, ValueError) as e:
            log.error("failed to persist raw alert: %s", e)

    def _trim_raw(self) -> None:
        try:
            deleted = trim_alerts(self.db, self.settings.MAX_ALERT_RECORDS)
        except sqlite3.Error as e:
            log.error("failed to trim alerts: %s", e)
            return
        if deleted:
            log.info("deleted %s old alert records", deleted)

    # ---------------- handling ----------------

    def handle(self, payload: Mapping[str, Any]) -> HandleResult:
        """
        Raises InvalidSignal (reject, no state change) and
        PersistenceFailure (state store down). Execution problems never raise.
        """
        signal = signal_from_alert(payload, self.settings.DEFAULT_PAIR)
        self._record_raw(payload)

        key = self.state_key(signal)
        with self.key_guard(key):
            current = self.store.load(key)
            t = transition(current, signal)

            # persist before any event or order leaves the process
            if t.state != current:
                self.store.save(key, t.state)

            result = HandleResult(
                state_key=key, mode=t.state.mode, info=t.narrative, decision=t.decision
            )

            if t.decision is not None:
                log.info("%s accepted [%s]: %s", t.decision.event_type, key, signal.alert_fields())
                result.event = self.sink.emit_decision(t.decision)

            prev_mode = current.mode if current is not None else None
            if t.state.mode != prev_mode:
                self.sink.emit_state(t.state.mode, key)

            if t.decision is not None:
                result.execution = self.executor.execute(t.decision)
            else:
                log.info("signal processed (no action) [%s]: %s -> %s", key, signal.text, t.narrative)

        self._trim_raw()
        return result

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {k: st.to_dict() for k, st in self.store.load_all().items()}
