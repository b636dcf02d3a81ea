from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from signalgate.persistence.activity_log import ActivityLog
from signalgate.persistence.db import utc_now_iso
from signalgate.policy.cycle_policy import AcceptEntry, AcceptOutcome
from signalgate.runner.models import CycleMode

log = logging.getLogger("signalgate.events")

Consumer = Callable[[Dict[str, Any]], Any]


def decision_event(decision: AcceptEntry | AcceptOutcome) -> Dict[str, Any]:
    """{type: entry|tp|sl, ...alert fields as received, sizeMultiplier}"""
    # event type wins over an alert field named "type"
    return {
        **decision.signal.alert_fields(),
        "type": decision.event_type,
        "sizeMultiplier": decision.size_multiplier,
    }


def state_event(mode: CycleMode, state_key: Optional[str] = None) -> Dict[str, Any]:
    evt: Dict[str, Any] = {"type": "state", "mode": mode.value, "timestamp": utc_now_iso()}
    if state_key is not None:
        evt["stateKey"] = state_key
    return evt


class EventSink:
    """
    Fire-and-forget fan-out of decision/state events.

    Every consumer is called for every event; a failing consumer is logged
    and never fails the alert being handled.
    """

    def __init__(
        self,
        activity: Optional[ActivityLog] = None,
        consumers: Optional[List[Consumer]] = None,
    ):
        self.activity = activity
        self.consumers: List[Consumer] = list(consumers or [])

    def add_consumer(self, fn: Consumer) -> None:
        self.consumers.append(fn)

    def _fan_out(self, event: Dict[str, Any]) -> None:
        for fn in self.consumers:
            try:
                fn(event)
            except Exception:
                log.exception("event consumer failed for %s event", event.get("type"))

    def _activity(self, phase: str, data: Dict[str, Any]) -> None:
        if self.activity is None:
            return
        try:
            self.activity.append(phase, data)
        except Exception:
            log.exception("activity log append failed")

    def emit_decision(self, decision: AcceptEntry | AcceptOutcome) -> Dict[str, Any]:
        event = decision_event(decision)
        if isinstance(decision, AcceptEntry):
            self._activity("entry", {k: v for k, v in event.items() if k != "type"})
        else:
            self._activity(
                "outcome",
                {"outcome": decision.event_type, **{k: v for k, v in event.items() if k != "type"}},
            )
        self._fan_out(event)
        return event

    def emit_state(self, mode: CycleMode, state_key: Optional[str] = None) -> Dict[str, Any]:
        event = state_event(mode, state_key)
        self._activity("state", {"mode": mode.value, "stateKey": state_key})
        self._fan_out(event)
        return event

    def emit_warning(self, details: Dict[str, Any]) -> None:
        # execution problems: activity trail only, not broadcast
        self._activity("warn", details)
