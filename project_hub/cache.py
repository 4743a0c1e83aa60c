from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

LOGGER = logging.getLogger(__name__)

AVAILABLE_ITEMS_KEY = "availableItems"


class CacheStore:
    """Persist JSON payloads under a key with a fixed time-to-live.

    Entries are never invalidated explicitly: writers to the underlying data
    do not purge the cache, so reads may be stale for up to ``ttl_seconds``.
    """

    def __init__(self, path: Path, ttl_seconds: int = 600, clock: Callable[[], float] = time.time) -> None:
        self._path = path
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    payload_json TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
                """
            )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload for ``key`` or ``None`` when absent or expired."""

        with self._lock:
            cursor = self._conn.execute(
                "SELECT payload_json, expires_at FROM cache_entries WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()

        if not row:
            return None
        if row["expires_at"] <= self._clock():
            LOGGER.debug("Cache entry %s expired", key)
            return None
        try:
            return json.loads(row["payload_json"])
        except json.JSONDecodeError:  # pragma: no cover - corrupted entry
            LOGGER.warning("Cached payload for %s is not valid JSON; ignoring", key)
            return None

    def put(self, key: str, payload: Any, ttl_seconds: int | None = None) -> None:
        """Store ``payload`` under ``key``, replacing any previous entry."""

        payload_json = json.dumps(payload, ensure_ascii=False)
        expires_at = self._clock() + (ttl_seconds if ttl_seconds is not None else self._ttl)

        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO cache_entries (key, payload_json, expires_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key)
                    DO UPDATE SET
                        payload_json = excluded.payload_json,
                        expires_at = excluded.expires_at
                    """,
                    (key, payload_json, expires_at),
                )
