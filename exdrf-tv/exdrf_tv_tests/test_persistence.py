import logging

from exdrf_tv.persistence import JsonSlot, MemoryStore, make_storage_key


class BrokenStore:
    """A store that fails on every operation."""

    def get(self, key):
        raise OSError("read failed")

    def set(self, key, value):
        raise OSError("write failed")


def test_memory_store():
    store = MemoryStore()
    assert store.get("a") is None
    store.set("a", "1")
    assert store.get("a") == "1"
    assert "a" in store
    store.remove("a")
    assert len(store) == 0


def test_make_storage_key():
    assert make_storage_key("users") == "users"
    assert make_storage_key("users", "/admin/list/") == "users-admin-list"
    assert make_storage_key("users", None, "main") == "users-main"
    assert make_storage_key("users", "/x", "main") == "users-x-main"


def test_slot_round_trip():
    slot = JsonSlot(MemoryStore(), "k")
    assert slot.save({"a": [1, 2]})
    assert slot.load() == {"a": [1, 2]}


def test_slot_corrupt_content(caplog):
    store = MemoryStore()
    store.set("k", "{not json")
    slot = JsonSlot(store, "k")
    with caplog.at_level(logging.WARNING):
        assert slot.load(default="d") == "d"
    assert slot.last_error is not None
    assert slot.last_error.operation == "decode"


def test_slot_decode_failure():
    store = MemoryStore()
    store.set("k", "[1]")
    slot = JsonSlot(store, "k")

    def decode(value):
        raise ValueError("bad")

    assert slot.load(default=[], decode=decode) == []
    assert slot.last_error.operation == "decode"


def test_slot_store_failures_are_not_raised():
    slot = JsonSlot(BrokenStore(), "k")
    assert slot.load(default=5) == 5
    assert slot.last_error.operation == "get"
    assert slot.save({"a": 1}) is False
    assert slot.last_error.operation == "set"
    assert slot.last_error.key == "k"


def test_slot_without_store():
    slot = JsonSlot(None, "k")
    assert slot.load(default=1) == 1
    assert slot.save(2) is False
