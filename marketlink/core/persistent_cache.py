"""
Durable cache for data that must survive restarts (offline quote viewing).

Rows are kept in SQLite. Staleness is never stored: each read compares the
row's age against the current threshold, so changing the threshold affects
every later read without rewriting anything.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from marketlink.constants import QUOTE_STALE_AFTER_HOURS
from marketlink.core.timing import SystemClock
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

Row = Tuple[str, str, float]


class SQLiteRowStore:
    """
    Key/value rows with a stored timestamp.

    Exposes only the four operations the cache needs: insert-or-replace,
    select-by-keys, select-all-ordered-by-recency and delete-older-than.
    Use ":memory:" as path for an in-process store.
    """

    def __init__(self, path: Union[str, Path] = ":memory:", table: str = "quote_cache"):
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        self.path = str(path)
        self.table = table
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path)
        with self._conn:
            self._conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL, stored_at REAL NOT NULL)"
            )
        logger.debug("Initialized row store %s:%s", self.path, self.table)

    def insert_or_replace(self, rows: Iterable[Row]) -> None:
        """Write all rows in one transaction; on any failure none are kept."""
        with self._conn:
            self._conn.executemany(
                f"INSERT OR REPLACE INTO {self.table} (key, value, stored_at) VALUES (?, ?, ?)",
                list(rows),
            )

    def select_by_keys(self, keys: Sequence[str]) -> List[Row]:
        if not keys:
            return []
        placeholders = ",".join("?" for _ in keys)
        cursor = self._conn.execute(
            f"SELECT key, value, stored_at FROM {self.table} WHERE key IN ({placeholders})",
            list(keys),
        )
        return cursor.fetchall()

    def select_all_recent_first(self) -> List[Row]:
        cursor = self._conn.execute(
            f"SELECT key, value, stored_at FROM {self.table} ORDER BY stored_at DESC"
        )
        return cursor.fetchall()

    def delete_older_than(self, cutoff: float) -> int:
        with self._conn:
            cursor = self._conn.execute(f"DELETE FROM {self.table} WHERE stored_at < ?", (cutoff,))
        return cursor.rowcount

    def count(self) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    def close(self) -> None:
        self._conn.close()


@dataclass(frozen=True)
class PersistentEntry:
    key: str
    value: Any
    stored_at: float
    stale_after: float
    is_stale: bool


class PersistentCache:
    """
    Read-through view over a row store with read-time staleness.

    Example:
        cache = PersistentCache(SQLiteRowStore("data/cache/quotes.db"))
        cache.write("AAPL", {"symbol": "AAPL", "price": 190.1})
        entry = cache.read("AAPL")
        if entry and entry.is_stale:
            print("showing cached price from", entry.stored_at)
    """

    def __init__(
        self,
        store: Optional[SQLiteRowStore] = None,
        stale_after: float = QUOTE_STALE_AFTER_HOURS * 3600,
        clock: Optional[Any] = None,
    ):
        """
        Args:
            store: Backing row store (in-memory SQLite if omitted)
            stale_after: Age in seconds beyond which entries read as stale
            clock: Clock providing now()
        """
        self.store = store or SQLiteRowStore()
        self.stale_after = stale_after
        self.clock = clock or SystemClock()

    def write(self, key: str, value: Any) -> None:
        self.write_many([(key, value)])

    def write_many(self, items: Iterable[Tuple[str, Any]]) -> int:
        """
        Store several values atomically.

        Values are JSON-encoded before anything touches the store, so an
        unserializable value aborts the whole batch.

        Returns:
            Number of rows written
        """
        now = self.clock.now()
        rows = [(key, json.dumps(value, default=str), now) for key, value in items]
        self.store.insert_or_replace(rows)
        logger.debug("Persisted %d cache rows", len(rows))
        return len(rows)

    def _to_entry(self, row: Row, now: float) -> PersistentEntry:
        key, raw, stored_at = row
        return PersistentEntry(
            key=key,
            value=json.loads(raw),
            stored_at=stored_at,
            stale_after=self.stale_after,
            is_stale=now - stored_at > self.stale_after,
        )

    def read_many(self, keys: Sequence[str]) -> List[PersistentEntry]:
        """Entries for the keys that exist, in the requested key order."""
        now = self.clock.now()
        by_key = {row[0]: self._to_entry(row, now) for row in self.store.select_by_keys(list(keys))}
        return [by_key[k] for k in keys if k in by_key]

    def read(self, key: str) -> Optional[PersistentEntry]:
        entries = self.read_many([key])
        return entries[0] if entries else None

    def read_all(self) -> List[PersistentEntry]:
        """All entries, most recently stored first."""
        now = self.clock.now()
        return [self._to_entry(row, now) for row in self.store.select_all_recent_first()]

    def purge_older_than(self, seconds: float) -> int:
        """
        Delete rows stored more than `seconds` ago.

        Returns:
            Number of rows deleted
        """
        removed = self.store.delete_older_than(self.clock.now() - seconds)
        if removed:
            logger.info("Purged %d cached rows older than %.1fh", removed, seconds / 3600)
        return removed

    def has_data(self) -> bool:
        return self.store.count() > 0
