"""SQLite-backed activity log for node runs."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional


class NodeEventLogger:
    """Persist one row per invocation and one event per item into SQLite.

    Best effort: a failing database never raises into the automation flow.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def start(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            self._conn = conn
            self._init_schema()

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except Exception:
                pass
            self._conn = None

    def init_run(self, run_id: str, execution_id: str, operation: str) -> None:
        self._safe_execute(
            """
            INSERT OR REPLACE INTO node_runs (
                run_id, execution_id, operation, started_at, status, error
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                str(run_id or ""),
                str(execution_id or ""),
                str(operation or ""),
                float(time.time()),
                "running",
                None,
            ),
        )

    def complete_run(self, run_id: str, status: str, error: Optional[str] = None) -> None:
        self._safe_execute(
            """
            UPDATE node_runs
               SET ended_at = ?, status = ?, error = ?
             WHERE run_id = ?
            """,
            (
                float(time.time()),
                str(status or "unknown"),
                str(error) if error else None,
                str(run_id or ""),
            ),
        )

    def log_item_event(
        self,
        run_id: str,
        item_index: int,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        p = payload if isinstance(payload, dict) else {}
        try:
            payload_json = json.dumps(p, ensure_ascii=False, default=str)
        except Exception:
            payload_json = json.dumps({"error": "payload_not_serializable"}, ensure_ascii=False)
        self._safe_execute(
            """
            INSERT INTO item_events (run_id, item_index, ts, event_type, payload_json)
            VALUES (?, ?, ?, ?, ?)
            """,
            (str(run_id or ""), int(item_index), float(time.time()), str(event_type or ""), payload_json),
        )

    def list_runs(self) -> List[Dict[str, Any]]:
        return self._safe_query(
            "SELECT run_id, execution_id, operation, started_at, ended_at, status, error "
            "FROM node_runs ORDER BY started_at"
        )

    def fetch_item_events(self, run_id: str) -> List[Dict[str, Any]]:
        rows = self._safe_query(
            "SELECT item_index, event_type, payload_json FROM item_events "
            "WHERE run_id = ? ORDER BY id",
            (str(run_id or ""),),
        )
        for row in rows:
            try:
                row["payload"] = json.loads(row.pop("payload_json") or "{}")
            except ValueError:
                row["payload"] = {}
        return rows

    def _init_schema(self) -> None:
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS node_runs (
                run_id TEXT PRIMARY KEY,
                execution_id TEXT,
                operation TEXT,
                started_at REAL,
                ended_at REAL,
                status TEXT,
                error TEXT
            )
            """
        )
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS item_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT,
                item_index INTEGER,
                ts REAL,
                event_type TEXT,
                payload_json TEXT
            )
            """
        )
        self._safe_execute("CREATE INDEX IF NOT EXISTS idx_item_events_run_id ON item_events(run_id)")

    def _safe_execute(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        with self._lock:
            try:
                if self._conn is None:
                    self.start()
                if self._conn is None:
                    return
                self._conn.execute(sql, params)
                self._conn.commit()
            except Exception:
                return

    def _safe_query(self, sql: str, params: tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            try:
                if self._conn is None:
                    self.start()
                if self._conn is None:
                    return []
                cursor = self._conn.execute(sql, params)
                columns = [c[0] for c in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except Exception:
                return []
