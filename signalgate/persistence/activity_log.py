# signalgate/persistence/activity_log.py
from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Any, Dict, List

from signalgate.persistence.db import utc_now_iso

log = logging.getLogger("signalgate.activity")


class ActivityLog:
    """
    Append-only JSON-lines trail of accepted decisions, state changes
    and execution warnings. One object per line, oldest first on disk.
    """

    def __init__(self, jsonl_path: str = "logs/activity.jsonl"):
        self.jsonl_path = Path(jsonl_path)
        self._lock = threading.Lock()

        # ensure logs folder + file exist
        try:
            self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)
            self.jsonl_path.touch(exist_ok=True)
        except OSError as e:
            # never crash the service due to activity file issues
            log.warning("activity log unavailable at %s: %s", self.jsonl_path, e)

    def append(self, phase: str, data: Dict[str, Any]) -> None:
        obj = {"phase": phase, **data, "logged_at": utc_now_iso()}
        try:
            line = json.dumps(obj, ensure_ascii=False, default=str)
            with self._lock:
                self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)
                with self.jsonl_path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            log.error("failed to write activity log: %s", e)

    def tail(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest entries first. Malformed lines are skipped."""
        if limit < 1:
            return []
        try:
            with self.jsonl_path.open("r", encoding="utf-8") as f:
                lines = deque(f, maxlen=limit)
        except FileNotFoundError:
            return []

        out: List[Dict[str, Any]] = []
        for line in reversed(lines):
            line = line.strip()
            if not line:
                continue
            try:
                out.append(json.loads(line))
            except ValueError:
                continue
        return out
