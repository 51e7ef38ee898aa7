"""
Tests for the client stores and the persistent view cache.
"""

import json

from opsconsole.client.cache import DAY_MS, PersistentCache, is_fresh
from opsconsole.client.storage import FileStorage, MemoryStorage, read_json, write_json


class Clock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


def test_entry_is_fresh_until_ttl():
    clock = Clock()
    cache = PersistentCache(MemoryStorage(), clock=clock)
    cache.set("k", {"a": 1})

    clock.now += DAY_MS - 1
    assert cache.get("k") == {"a": 1}

    clock.now += 1
    assert cache.get("k") is None
    assert cache.store.get("k") is None


def test_non_expiring_read_ignores_ttl():
    clock = Clock()
    cache = PersistentCache(MemoryStorage(), clock=clock)
    cache.set("selected", ["register"])
    clock.now += 10 * DAY_MS
    assert cache.get("selected", expires=False) == ["register"]


def test_oversized_value_is_not_stored_and_drops_previous():
    cache = PersistentCache(MemoryStorage(), max_bytes=80, clock=Clock())
    assert cache.set("k", "small") is True
    assert cache.set("k", "x" * 200) is False
    assert cache.get("k") is None


def test_entry_of_another_owner_is_evicted():
    cache = PersistentCache(MemoryStorage(), clock=Clock())
    cache.set("k", [1, 2], owner=7)
    assert cache.get("k", owner="7") == [1, 2]
    assert cache.get("k", owner=8) is None
    assert cache.get("k", owner=7) is None


def test_malformed_entries_are_dropped():
    store = MemoryStorage({"bad": "{not json", "shape": json.dumps({"timestamp": 1})})
    cache = PersistentCache(store, clock=Clock())
    assert cache.get("bad") is None
    assert cache.get("shape") is None
    assert store.keys() == []


def test_clear_removes_registered_keys_only():
    store = MemoryStorage({"token": "t"})
    cache = PersistentCache(store, clock=Clock(), keys=("a",))
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert store.keys() == ["token"]


def test_is_fresh_rejects_missing_timestamp():
    assert is_fresh(None, 100) is False
    assert is_fresh(True, 100) is False
    assert is_fresh(50, 100, ttl_ms=51) is True


def test_file_storage_persists(tmp_path):
    path = tmp_path / "store.json"
    store = FileStorage(path)
    write_json(store, "user", {"username": "小明"})
    store.set("token", "abc")
    store.remove("token")

    reopened = FileStorage(path)
    assert read_json(reopened, "user") == {"username": "小明"}
    assert reopened.get("token") is None


def test_file_storage_ignores_unreadable_file(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("garbage", encoding="utf-8")
    assert FileStorage(path).keys() == []
