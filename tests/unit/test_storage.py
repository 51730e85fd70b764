"""Unit tests for the key-value stores."""

import json
from unittest.mock import patch

import pytest

from sealbox.core.exceptions import IOFailure
from sealbox.core.storage import JsonFileStore, MemoryStore


@pytest.fixture
def clock():
    """Patch time.time() in the storage module with a controllable clock."""
    now = [1000.0]
    with patch("sealbox.core.storage.time.time", side_effect=lambda: now[0]):
        yield now


# ==============================================================================
# MemoryStore
# ==============================================================================

def test_memory_put_get_delete():
    store = MemoryStore()
    store.put("a", {"x": 1})
    assert store.get("a") == {"x": 1}
    assert "a" in store
    assert store.delete("a") is True
    assert store.get("a") is None
    assert store.delete("a") is False


def test_memory_entry_expires(clock):
    store = MemoryStore()
    store.put("a", "v", ttl_seconds=10)
    clock[0] += 9
    assert store.get("a") == "v"
    clock[0] += 2
    assert store.get("a") is None
    assert "a" not in store


def test_memory_default_ttl(clock):
    store = MemoryStore(default_ttl=5)
    store.put("a", "v")
    store.put("b", "w", ttl_seconds=100)
    clock[0] += 6
    assert list(store.keys()) == ["b"]
    assert len(store) == 1


def test_memory_pop_is_one_shot():
    store = MemoryStore()
    store.put("k", "v")
    assert store.pop("k") == "v"
    assert store.pop("k") is None


def test_memory_pop_expired_returns_none(clock):
    store = MemoryStore()
    store.put("k", "v", ttl_seconds=1)
    clock[0] += 2
    assert store.pop("k") is None


def test_memory_purge(clock):
    store = MemoryStore()
    store.put("old", 1, ttl_seconds=1)
    store.put("keep", 2)
    clock[0] += 5
    assert store.purge() == 1
    assert list(store.keys()) == ["keep"]


def test_memory_put_sweeps_expired_entries(clock):
    store = MemoryStore()
    for i in range(50):
        store.put(f"stale-{i}", i, ttl_seconds=1)
    clock[0] += 10
    store.put("fresh", "v", ttl_seconds=1)
    assert store.purge() == 0
    assert list(store.keys()) == ["fresh"]


# ==============================================================================
# JsonFileStore
# ==============================================================================

@pytest.fixture
def file_store(tmp_path):
    return JsonFileStore(tmp_path / "profiles")


def test_file_store_round_trip(file_store):
    file_store.put("alice", {"salt": "00"})
    assert file_store.get("alice") == {"salt": "00"}
    assert json.loads((file_store.root / "alice.json").read_text()) == {"salt": "00"}
    assert not list(file_store.root.glob("*.tmp"))


def test_file_store_missing_key(file_store):
    assert file_store.get("ghost") is None
    assert file_store.delete("ghost") is False


def test_file_store_keys_sorted(file_store):
    for name in ("carol", "alice", "bob"):
        file_store.put(name, {})
    assert list(file_store.keys()) == ["alice", "bob", "carol"]


def test_file_store_delete(file_store):
    file_store.put("alice", {})
    assert file_store.delete("alice") is True
    assert "alice" not in file_store


@pytest.mark.parametrize("key", ["../escape", "a/b", "", "..", "x" * 129])
def test_file_store_rejects_unsafe_keys(file_store, key):
    with pytest.raises(ValueError):
        file_store.put(key, {})


def test_file_store_rejects_ttl(file_store):
    with pytest.raises(ValueError):
        file_store.put("alice", {}, ttl_seconds=5)


def test_file_store_corrupt_json_is_io_failure(file_store):
    (file_store.root / "alice.json").write_text("{not json")
    with pytest.raises(IOFailure):
        file_store.get("alice")


def test_file_store_write_error_is_io_failure(file_store):
    with patch("sealbox.core.storage.os.replace", side_effect=OSError("read-only")):
        with pytest.raises(IOFailure, match="read-only"):
            file_store.put("alice", {})
