"""SQLite storage adapter.

Implements the core KeyValueStorePort using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Optional


class SQLiteKeyValueStore:
    """Thin SQLite wrapper that satisfies the KeyValueStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - kv: scoped key-value pairs for correlation bookkeeping
        """

        with self._connect() as conn:
            # kv keeps every scope in one table; the composite primary key
            # doubles as the index for prefix scans within a scope.
            # Fields:
            # - scope: "shared" or "handle:<subscriber id>"
            # - key: correlation key or anchor id
            # - value: JSON-encoded value
            # - updated_at: last write time, for debugging
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    scope TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (scope, key)
                )
                """
            )

    def scoped_set(self, scope: str, key: str, value: Any) -> None:
        """Upsert a value; the last write wins."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (scope, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(scope, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (scope, key, json.dumps(value)),
            )

    def get(self, scope: str, key: str) -> Optional[Any]:
        """Return the stored value, or None when the key is absent."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv WHERE scope = ? AND key = ?",
                (scope, key),
            ).fetchone()
        return json.loads(row["value"]) if row else None

    def list_by_prefix(self, scope: str, prefix: str) -> list[tuple[str, Any]]:
        """Return (key, value) pairs whose key starts with ``prefix``, ordered by key."""

        # substr() instead of LIKE so "%" and "_" in anchors match literally.
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT key, value FROM kv
                WHERE scope = ? AND substr(key, 1, ?) = ?
                ORDER BY key
                """,
                (scope, len(prefix), prefix),
            ).fetchall()
        return [(row["key"], json.loads(row["value"])) for row in rows]

    def count_keys(self, scope: str) -> int:
        """Return how many keys a scope holds."""

        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM kv WHERE scope = ?", (scope,)).fetchone()
        return int(row["total"])
