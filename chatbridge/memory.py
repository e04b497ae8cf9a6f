"""Expiring key-value store backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any

from chatbridge.log import logger
from chatbridge.types import MemoryRecord, generate_id

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
  id TEXT PRIMARY KEY,
  key TEXT NOT NULL UNIQUE,
  value_json TEXT NOT NULL,
  category TEXT,
  metadata_json TEXT,
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL,
  expires_at REAL
);
"""

# Records without expires_at never expire.
_LIVE = "(expires_at IS NULL OR expires_at > ?)"


class MemoryStore:
    """Keyed records with optional TTL. ``put`` upserts by key.

    Expired records are invisible to every read; ``delete_expired`` removes
    them physically and is driven by the maintenance scheduler.
    """

    def __init__(self, path: Path | str = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.path = str(Path(self.path).expanduser())
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        cur = self._conn.cursor()
        try:
            if self.path != ":memory:":
                cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute(_SCHEMA)
            cur.execute("CREATE INDEX IF NOT EXISTS idx_mem_category ON memories(category);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_mem_expires ON memories(expires_at);")
            self._conn.commit()
        finally:
            cur.close()

    def close(self) -> None:
        self._conn.close()

    def put(
        self,
        key: str,
        value: Any,
        category: str | None = None,
        metadata: dict[str, Any] | None = None,
        ttl_seconds: float | None = None,
    ) -> MemoryRecord:
        now = time.time()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        cur = self._conn.cursor()
        try:
            cur.execute(
                """
                INSERT INTO memories(id, key, value_json, category, metadata_json, created_at, updated_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value_json = excluded.value_json,
                  category = excluded.category,
                  metadata_json = excluded.metadata_json,
                  updated_at = excluded.updated_at,
                  expires_at = excluded.expires_at;
                """,
                (
                    generate_id(),
                    key,
                    json.dumps(value, ensure_ascii=False),
                    category,
                    json.dumps(metadata, ensure_ascii=False) if metadata is not None else None,
                    now,
                    now,
                    expires_at,
                ),
            )
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cur.close()
        record = self._fetch_one("SELECT * FROM memories WHERE key = ?", (key,))
        assert record is not None
        return record

    def get(self, key: str) -> MemoryRecord | None:
        return self._fetch_one(f"SELECT * FROM memories WHERE key = ? AND {_LIVE}", (key, time.time()))

    def delete(self, key: str) -> bool:
        return self._execute("DELETE FROM memories WHERE key = ?", (key,)) > 0

    def get_by_category(self, category: str) -> list[MemoryRecord]:
        return self._fetch_all(
            f"SELECT * FROM memories WHERE category = ? AND {_LIVE} ORDER BY updated_at DESC",
            (category, time.time()),
        )

    def search(self, pattern: str) -> list[MemoryRecord]:
        """Live records whose key contains ``pattern`` (case-sensitive substring)."""
        return self._fetch_all(
            f"SELECT * FROM memories WHERE instr(key, ?) > 0 AND {_LIVE} ORDER BY updated_at DESC",
            (pattern, time.time()),
        )

    def list(self, category: str | None = None, page: int = 1, limit: int = 50) -> tuple[list[MemoryRecord], int]:
        page = max(1, int(page))
        limit = max(1, min(500, int(limit)))
        clauses = [_LIVE]
        params: list[Any] = [time.time()]
        if category:
            clauses.append("category = ?")
            params.append(category)
        where = " AND ".join(clauses)

        cur = self._conn.cursor()
        try:
            total = cur.execute(f"SELECT COUNT(*) FROM memories WHERE {where}", params).fetchone()[0]
        finally:
            cur.close()
        records = self._fetch_all(
            f"SELECT * FROM memories WHERE {where} ORDER BY updated_at DESC LIMIT ? OFFSET ?",
            (*params, limit, (page - 1) * limit),
        )
        return records, int(total)

    def delete_expired(self) -> int:
        count = self._execute(
            "DELETE FROM memories WHERE expires_at IS NOT NULL AND expires_at <= ?", (time.time(),)
        )
        if count:
            logger.info(f"Removed {count} expired memory records")
        return count

    def _execute(self, sql: str, params: tuple[Any, ...]) -> int:
        cur = self._conn.cursor()
        try:
            cur.execute(sql, params)
            self._conn.commit()
            return cur.rowcount
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cur.close()

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> MemoryRecord | None:
        cur = self._conn.cursor()
        try:
            row = cur.execute(sql, params).fetchone()
        finally:
            cur.close()
        return _to_record(row) if row is not None else None

    def _fetch_all(self, sql: str, params: tuple[Any, ...]) -> list[MemoryRecord]:
        cur = self._conn.cursor()
        try:
            rows = cur.execute(sql, params).fetchall()
        finally:
            cur.close()
        return [_to_record(row) for row in rows]


def _to_record(row: sqlite3.Row) -> MemoryRecord:
    metadata = row["metadata_json"]
    return MemoryRecord(
        id=row["id"],
        key=row["key"],
        value=json.loads(row["value_json"]),
        category=row["category"],
        metadata=json.loads(metadata) if metadata else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        expires_at=row["expires_at"],
    )
