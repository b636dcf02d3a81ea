# signalgate/persistence/state_store.py

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Dict, Optional

from signalgate.core.errors import PersistenceFailure
from signalgate.persistence.db import DB, utc_now_iso
from signalgate.policy.cycle_policy import repair
from signalgate.runner.models import VALID_MODES, CycleMode, CycleState
from signalgate.signals.normalizer import Signal

log = logging.getLogger("signalgate.state")


def _row_to_state(row: sqlite3.Row) -> Optional[CycleState]:
    """
    Typed CycleState from a DB row.
    Returns None when the row cannot be decoded (unknown mode, bad JSON).
    """
    if row["mode"] not in VALID_MODES:
        return None

    pending = None
    raw = row["pending_entry_json"]
    if raw:
        try:
            pending = Signal.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            return None

    return CycleState(
        mode=CycleMode(row["mode"]),
        pending_entry=pending,
        consecutive_losses=int(row["consecutive_losses"] or 0),
        size_multiplier=int(row["size_multiplier"] or 1),
        halt_profit_count=int(row["halt_profit_count"] or 0),
    )


class StateStore:
    def __init__(self, db: DB):
        self.db = db

    def load(self, key: str) -> Optional[CycleState]:
        try:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT * FROM cycle_state WHERE state_key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"load cycle_state[{key}] failed: {e}") from e

        if not row:
            return None
        return _row_to_state(row)

    def save(self, key: str, st: CycleState) -> None:
        """
        UPSERT the full record in one statement (safe across restarts).
        """
        pending = (
            json.dumps(st.pending_entry.to_dict(), ensure_ascii=False)
            if st.pending_entry
            else None
        )
        try:
            with self.db.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO cycle_state(
                        state_key, mode, pending_entry_json, consecutive_losses,
                        size_multiplier, halt_profit_count, updated_at
                    )
                    VALUES (?,?,?,?,?,?,?)
                    ON CONFLICT(state_key) DO UPDATE SET
                        mode=excluded.mode,
                        pending_entry_json=excluded.pending_entry_json,
                        consecutive_losses=excluded.consecutive_losses,
                        size_multiplier=excluded.size_multiplier,
                        halt_profit_count=excluded.halt_profit_count,
                        updated_at=excluded.updated_at
                    """,
                    (
                        key,
                        st.mode.value,
                        pending,
                        int(st.consecutive_losses),
                        int(st.size_multiplier),
                        int(st.halt_profit_count),
                        utc_now_iso(),
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceFailure(f"save cycle_state[{key}] failed: {e}") from e

    def ensure(self, key: str) -> CycleState:
        """Create the record if absent; repair it in place if malformed."""
        current = self.load(key)
        fixed = repair(current)
        if current is None:
            # absent or undecodable row
            self.save(key, fixed)
            log.info("initialized cycle state %s to %s", key, fixed.mode.value)
        elif fixed != current:
            self.save(key, fixed)
            log.warning("repaired cycle state %s to %s", key, fixed.mode.value)
        return fixed

    def load_all(self) -> Dict[str, CycleState]:
        try:
            with self.db.connect() as conn:
                rows = conn.execute("SELECT * FROM cycle_state").fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"load cycle_state failed: {e}") from e
        return {r["state_key"]: repair(_row_to_state(r)) for r in rows}
