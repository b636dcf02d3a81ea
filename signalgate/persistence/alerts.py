from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping

from signalgate.persistence.db import DB, utc_now_iso


def record_alert(db: DB, payload: Mapping[str, Any]) -> int:
    """Store the raw alert body as received. Returns the row id."""
    with db.connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO alerts(received_at, signal, pair, payload_json)
            VALUES (?,?,?,?)
            """,
            (
                utc_now_iso(),
                str(payload.get("signal") or ""),
                str(payload.get("pair") or ""),
                json.dumps(dict(payload), ensure_ascii=False, default=str),
            ),
        )
        return int(cur.lastrowid)


def trim_alerts(db: DB, keep: int) -> int:
    """Delete everything but the newest `keep` alerts. Returns rows deleted."""
    with db.connect() as conn:
        cur = conn.execute(
            """
            DELETE FROM alerts
            WHERE id NOT IN (SELECT id FROM alerts ORDER BY id DESC LIMIT ?)
            """,
            (int(keep),),
        )
        return int(cur.rowcount or 0)


def recent_alerts(db: DB, limit: int = 50) -> List[Dict[str, Any]]:
    with db.connect() as conn:
        rows = conn.execute(
            "SELECT id, received_at, payload_json FROM alerts ORDER BY id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()

    return [
        {
            "id": r["id"],
            "received_at": r["received_at"],
            "payload": json.loads(r["payload_json"] or "{}"),
        }
        for r in rows
    ]
