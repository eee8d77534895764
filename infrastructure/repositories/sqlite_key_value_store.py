import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from use_cases.auth_errors import StoreError

log = logging.getLogger(__name__)


class SQLiteKeyValueStore:
    """Durable key/value store. Values are JSON encoded, one row per key."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def _get_current_version(self, conn) -> int:
        row = conn.execute("SELECT version FROM schema_info").fetchone()
        if row:
            return row[0]
        return 0

    def _migrate_v1(self, conn):
        """Baseline schema (v1)."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def _migrate_v2(self, conn):
        """Track when each key was last written."""
        cols = [c[1] for c in conn.execute("PRAGMA table_info(kv_store)").fetchall()]
        if "updated_at" not in cols:
            conn.execute("ALTER TABLE kv_store ADD COLUMN updated_at TEXT")

    def init_store(self):
        MIGRATIONS = [self._migrate_v1, self._migrate_v2]

        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
            """)

            current_version = self._get_current_version(conn)
            has_version_row = conn.execute("SELECT COUNT(*) FROM schema_info").fetchone()[0] > 0
            if not has_version_row:
                conn.execute("INSERT INTO schema_info (version) VALUES (?)", (current_version,))

            for i in range(current_version, len(MIGRATIONS)):
                target_version = i + 1
                try:
                    MIGRATIONS[i](conn)
                    conn.execute("UPDATE schema_info SET version = ?", (target_version,))
                except Exception as e:
                    # Raising inside the connection context rolls back every step of this run.
                    raise RuntimeError(f"Key/value store migration to v{target_version} failed: {e}") from e

            conn.commit()

    def get_schema_version(self) -> int:
        with self._conn() as conn:
            return self._get_current_version(conn)

    def get(self, key: str) -> Optional[Any]:
        try:
            with self._conn() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError:
            log.warning(f"Stored value for {key} is not valid JSON, ignoring it")
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value for {key} is not serializable: {e}") from e
        now_iso = datetime.now(timezone.utc).isoformat()
        try:
            with self._conn() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, encoded, now_iso),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            with self._conn() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to remove {key}: {e}") from e
