from __future__ import annotations

import threading

import pytest

from imagestream.store import Artifact, ArtifactStore


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _artifact(data: bytes = b"\x89PNG") -> Artifact:
    return Artifact(data=data, content_type="image/png", filename="x.png")


def test_put_then_get_returns_bytes():
    store = ArtifactStore()
    sid = store.new_id()
    store.put(sid, _artifact(b"hello"))
    got = store.get(sid)
    assert got is not None
    assert got.data == b"hello"
    assert got.size == 5
    assert sid in store


def test_unknown_id_is_absent():
    store = ArtifactStore()
    assert store.get("nope") is None
    assert "nope" not in store
    assert 123 not in store


def test_ids_are_unique():
    store = ArtifactStore()
    ids = {store.new_id() for _ in range(200)}
    assert len(ids) == 200


def test_capacity_evicts_oldest():
    store = ArtifactStore(max_entries=2)
    store.put("a", _artifact())
    store.put("b", _artifact())
    store.put("c", _artifact())
    assert store.get("a") is None
    assert store.get("b") is not None
    assert store.get("c") is not None
    assert len(store) == 2


def test_ttl_expiry():
    clock = FakeClock()
    store = ArtifactStore(ttl_seconds=10, clock=clock)
    store.put("a", _artifact())
    clock.now = 9.9
    assert store.get("a") is not None
    clock.now = 10.0
    assert store.get("a") is None
    assert len(store) == 0


def test_put_purges_expired_entries():
    clock = FakeClock()
    store = ArtifactStore(ttl_seconds=5, clock=clock)
    store.put("old", _artifact())
    clock.now = 6
    store.put("new", _artifact())
    assert len(store) == 1
    assert "new" in store


def test_byte_budget_evicts_oldest():
    store = ArtifactStore(max_entries=None, max_bytes=10)
    store.put("a", _artifact(b"aaaa"))
    store.put("b", _artifact(b"bbbb"))
    assert store.total_bytes == 8
    store.put("c", _artifact(b"cccc"))
    assert store.get("a") is None
    assert store.get("b") is not None
    assert store.get("c") is not None
    assert store.total_bytes == 8


def test_oversize_newest_entry_is_kept():
    store = ArtifactStore(max_bytes=4)
    store.put("a", _artifact(b"aa"))
    store.put("big", _artifact(b"x" * 10))
    assert "a" not in store
    assert store.get("big").size == 10
    assert len(store) == 1
    assert store.total_bytes == 10


def test_total_bytes_follows_replace_and_expiry():
    clock = FakeClock()
    store = ArtifactStore(ttl_seconds=5, clock=clock)
    store.put("a", _artifact(b"12345"))
    store.put("a", _artifact(b"12"))
    assert store.total_bytes == 2
    store.put("b", _artifact(b"123"))
    assert store.total_bytes == 5
    clock.now = 6
    assert store.get("a") is None
    assert len(store) == 0
    assert store.total_bytes == 0


def test_invalid_limits():
    with pytest.raises(ValueError):
        ArtifactStore(max_entries=0)
    with pytest.raises(ValueError):
        ArtifactStore(ttl_seconds=0)
    with pytest.raises(ValueError):
        ArtifactStore(max_bytes=0)


def test_from_profile():
    store = ArtifactStore.from_profile({"max_entries": 3, "ttl_seconds": None, "max_bytes": 1024}, name="videos")
    assert store.max_entries == 3
    assert store.ttl_seconds is None
    assert store.max_bytes == 1024
    assert store.name == "videos"


def test_concurrent_puts_are_all_visible():
    store = ArtifactStore(max_entries=None)
    ids = [store.new_id() for _ in range(64)]

    def worker(chunk):
        for sid in chunk:
            store.put(sid, _artifact(sid.encode()))

    threads = [threading.Thread(target=worker, args=(ids[i::4],)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 64
    for sid in ids:
        got = store.get(sid)
        assert got is not None and got.data == sid.encode()
