import os
import json
import sqlite3
import threading
from typing import Any, Dict, Iterable, Optional

# SQLite file lives under output/plan_cache.db unless PLAN_CACHE_DB is set
_BASE_DIR = os.path.dirname(__file__)
_DB_DIR = os.path.join(_BASE_DIR, "output")
DB_PATH = os.getenv("PLAN_CACHE_DB", os.path.join(_DB_DIR, "plan_cache.db"))


class LocalPlanStore:
    """
    Local tier of the plan cache: one row per user holding the serialized
    CachedPlan. Fast and best-effort; the durable store is the source of truth
    across machines.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self.init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            with self._lock:
                if self._conn is None:
                    if self.db_path != ":memory:":
                        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
                    self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                    self._conn.row_factory = sqlite3.Row
        return self._conn

    def _exec(self, sql: str, params: Iterable[Any] = ()):
        conn = self._get_conn()
        with self._lock:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur

    def _query(self, sql: str, params: Iterable[Any] = ()):
        conn = self._get_conn()
        with self._lock:
            cur = conn.execute(sql, params)
            rows = cur.fetchall()
        return rows

    def init_db(self):
        self._exec(
            """
            CREATE TABLE IF NOT EXISTS plan_cache (
              user_id TEXT PRIMARY KEY,
              cached_at TEXT NOT NULL,
              data_json TEXT NOT NULL,
              updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def get_plan(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query("SELECT data_json FROM plan_cache WHERE user_id=?", (user_id,))
        if not rows:
            return None
        try:
            data = json.loads(rows[0]["data_json"] or "{}")
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    def save_plan(self, user_id: str, cached_at: str, data: Dict[str, Any]):
        self._exec(
            """
            INSERT INTO plan_cache (user_id, cached_at, data_json)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
              cached_at=excluded.cached_at,
              data_json=excluded.data_json,
              updated_at=CURRENT_TIMESTAMP
            """,
            (user_id, cached_at, json.dumps(data, ensure_ascii=False)),
        )

    def delete_plan(self, user_id: str):
        self._exec("DELETE FROM plan_cache WHERE user_id=?", (user_id,))

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
