"""Test caching system functionality."""

import sqlite3

import pytest

from marketlink.core.cache import EphemeralCache
from marketlink.core.persistent_cache import PersistentCache, SQLiteRowStore
from marketlink.core.timing import VirtualClock


class TestEphemeralCache:
    """Test suite for the in-memory TTL cache."""

    def test_store_and_retrieve(self, clock):
        cache = EphemeralCache(clock=clock)
        cache.set("quote:AAPL", {"price": 190.0}, ttl=10)
        assert cache.get("quote:AAPL") == {"price": 190.0}

    def test_miss(self, clock):
        assert EphemeralCache(clock=clock).get("nothing") is None

    def test_expires_on_read_without_sweep(self, clock):
        cache = EphemeralCache(clock=clock)
        cache.set("quote:AAPL", 1, ttl=10)
        clock.advance(9)
        assert cache.get("quote:AAPL") == 1
        clock.advance(2)
        assert len(cache) == 1  # still stored until read
        assert cache.get("quote:AAPL") is None
        assert len(cache) == 0

    def test_overwrite_resets_ttl(self, clock):
        cache = EphemeralCache(clock=clock)
        cache.set("k", "old", ttl=5)
        clock.advance(4)
        cache.set("k", "new", ttl=5)
        clock.advance(4)
        assert cache.get("k") == "new"

    def test_clear_and_invalidate(self, clock):
        cache = EphemeralCache(clock=clock)
        cache.set("a", 1, ttl=60)
        cache.set("b", 2, ttl=60)
        cache.invalidate("a")
        assert cache.get("a") is None
        assert "b" in cache
        cache.clear()
        assert len(cache) == 0


class TestPersistentCache:
    """Test suite for the SQLite-backed cache."""

    def test_write_and_read(self, persistent):
        persistent.write("quote:AAPL", {"symbol": "AAPL", "price": 190.5})
        entry = persistent.read("quote:AAPL")
        assert entry.value == {"symbol": "AAPL", "price": 190.5}
        assert not entry.is_stale

    def test_staleness_computed_at_read(self, persistent, clock):
        persistent.write("quote:AAPL", {"price": 1})
        clock.advance(4 * 3600 + 1)
        assert persistent.read("quote:AAPL").is_stale

        # Raising the threshold un-stales nothing on disk; reads just use the new value
        persistent.stale_after = 8 * 3600
        assert not persistent.read("quote:AAPL").is_stale

    def test_staleness_does_not_touch_row(self, persistent, clock):
        persistent.write("quote:MSFT", {"price": 2})
        stored_at = persistent.read("quote:MSFT").stored_at
        clock.advance(5 * 3600)
        entry = persistent.read("quote:MSFT")
        assert entry.is_stale
        assert entry.stored_at == stored_at
        assert persistent.store.select_by_keys(["quote:MSFT"])[0][2] == stored_at

    def test_fresh_write_clears_staleness(self, persistent, clock):
        persistent.write("quote:AAPL", {"price": 1})
        clock.advance(5 * 3600)
        persistent.write("quote:AAPL", {"price": 2})
        entry = persistent.read("quote:AAPL")
        assert entry.value == {"price": 2}
        assert not entry.is_stale

    def test_read_many_keeps_requested_order(self, persistent):
        persistent.write_many([("a", 1), ("b", 2), ("c", 3)])
        entries = persistent.read_many(["c", "missing", "a"])
        assert [e.key for e in entries] == ["c", "a"]

    def test_read_all_most_recent_first(self, persistent, clock):
        persistent.write("old", 1)
        clock.advance(60)
        persistent.write("new", 2)
        assert [e.key for e in persistent.read_all()] == ["new", "old"]

    def test_batch_write_is_all_or_nothing(self, persistent):
        persistent.write("keep", 1)
        # Second row violates NOT NULL on stored_at, so the first must roll back too
        with pytest.raises(sqlite3.IntegrityError):
            persistent.store.insert_or_replace([("x", "1", 1.0), ("y", "2", None)])
        assert persistent.read_many(["x", "y"]) == []
        assert persistent.read("keep").value == 1

    def test_purge_older_than(self, persistent, clock):
        persistent.write("old", 1)
        clock.advance(25 * 3600)
        persistent.write("new", 2)
        removed = persistent.purge_older_than(24 * 3600)
        assert removed == 1
        assert [e.key for e in persistent.read_all()] == ["new"]

    def test_survives_reopen(self, tmp_path):
        clock = VirtualClock()
        path = tmp_path / "quotes.db"
        first = PersistentCache(SQLiteRowStore(path), clock=clock)
        first.write("quote:AAPL", {"price": 190})
        first.store.close()

        second = PersistentCache(SQLiteRowStore(path), clock=clock)
        assert second.read("quote:AAPL").value == {"price": 190}
        assert second.has_data()

    def test_rejects_bad_table_name(self):
        with pytest.raises(ValueError):
            SQLiteRowStore(":memory:", table="quotes; DROP TABLE x")
