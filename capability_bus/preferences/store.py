"""
Preference Store — small key/value store for the rating rate limiter.

Holds only what the threshold/counter logic needs: the positive action
counter, whether the review prompt was already shown, and the app version the
runtime last started with.
Prototype: SQLite (":memory:" by default, a file path to persist across runs).
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, List, Optional

POSITIVE_ACTION_COUNT = "positive_action_count"
ALREADY_ASKED_FOR_REVIEW = "already_asked_for_review"
LAST_APP_VERSION = "last_app_version"


class PreferenceStore:
    """SQLite-backed key/value store. Values are stored as JSON."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the preferences table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute(
            "SELECT value_json FROM preferences WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO preferences (key, value_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), datetime.utcnow().isoformat()),
        )
        self._conn.commit()

    def increment(self, key: str, by: int = 1) -> int:
        """Increment an integer preference and return the new value."""
        value = self.get_int(key) + by
        self.set(key, value)
        return value

    def remove(self, key: str) -> bool:
        cursor = self._conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        self._conn.commit()
        return cursor.rowcount > 0

    def keys(self) -> List[str]:
        rows = self._conn.execute("SELECT key FROM preferences ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def clear(self) -> None:
        """Remove every preference (developer settings reset)."""
        self._conn.execute("DELETE FROM preferences")
        self._conn.commit()

    def record_app_version(self, version: str) -> Optional[str]:
        """Store the running app version; returns the previously recorded one."""
        previous = self.get(LAST_APP_VERSION)
        self.set(LAST_APP_VERSION, version)
        return previous

    def close(self) -> None:
        self._conn.close()
