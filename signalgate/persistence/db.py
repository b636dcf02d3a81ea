from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator


# =========================
# Time helpers
# =========================
def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =========================
# Database class
# =========================
class DB:
    """
    Single source of truth for SQLite access.
    Default path: data/signalgate.db
    """

    def __init__(self, path: str = "data/signalgate.db"):
        self.path = path

        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)

        self._init()

    # -------------------------
    # Connection manager
    # -------------------------
    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # -------------------------
    # Init / migrations
    # -------------------------
    def _init(self) -> None:
        conn = sqlite3.connect(self.path, timeout=30)
        try:
            # =========================
            # Raw alerts (as received)
            # =========================
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    received_at TEXT NOT NULL,
                    signal TEXT,
                    pair TEXT,
                    payload_json TEXT NOT NULL
                )
                """
            )

            # =========================
            # Cycle state (one live row per state key)
            # =========================
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cycle_state (
                    state_key TEXT PRIMARY KEY,
                    mode TEXT NOT NULL,
                    pending_entry_json TEXT,
                    consecutive_losses INTEGER NOT NULL DEFAULT 0,
                    size_multiplier INTEGER NOT NULL DEFAULT 1,
                    halt_profit_count INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
                """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_alerts_time ON alerts(received_at)"
            )

            conn.commit()

        finally:
            conn.close()
