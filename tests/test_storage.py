import asyncio
import os
import shutil
import tempfile
import threading
import time
from pathlib import Path

import pytest

from kvline.core.storage import (
    AsyncStore,
    FileStore,
    LMDBStore,
    MemoryStore,
    StorageConfig,
    open_store,
)
from kvline.exceptions import StoreError


@pytest.fixture
def temp_dir():
    path = tempfile.mkdtemp()
    yield path
    shutil.rmtree(path)


@pytest.fixture
def file_store(temp_dir):
    return FileStore(Path(temp_dir) / "store")


class TestFileStore:
    def test_put_get(self, file_store):
        file_store.put("alpha", b"hello world")
        assert file_store.get("alpha") == b"hello world"

    def test_get_missing(self, file_store):
        assert file_store.get("nosuch") is None
        assert "nosuch" not in file_store

    def test_overwrite_replaces(self, file_store):
        file_store.put("k", b"a much longer first value")
        file_store.put("k", b"v2")
        assert file_store.get("k") == b"v2"

    def test_delete_is_idempotent(self, file_store):
        file_store.put("k", b"v")
        file_store.delete("k")
        file_store.delete("k")
        file_store.delete("never-set")
        assert file_store.get("k") is None

    def test_one_file_per_key_under_root(self, file_store):
        file_store.put("alpha", b"1")
        file_store.put("beta", b"2")
        assert sorted(os.listdir(file_store.root)) == ["alpha", "beta"]
        assert (file_store.root / "alpha").read_bytes() == b"1"
        assert sorted(file_store.keys()) == ["alpha", "beta"]

    def test_keys_are_case_sensitive(self, file_store):
        file_store.put("Key", b"upper")
        file_store.put("key", b"lower")
        assert file_store.get("Key") == b"upper"
        assert file_store.get("key") == b"lower"

    def test_root_is_created(self, temp_dir):
        root = Path(temp_dir) / "a" / "b"
        FileStore(root)
        assert root.is_dir()

    def test_read_failure_is_store_error(self, file_store):
        (file_store.root / "blocked").mkdir()
        with pytest.raises(StoreError) as exc:
            file_store.get("blocked")
        assert exc.value.operation == "get"
        assert exc.value.key == "blocked"

    def test_write_failure_is_store_error_and_leaves_no_temp(self, file_store):
        (file_store.root / "blocked").mkdir()
        with pytest.raises(StoreError) as exc:
            file_store.put("blocked", b"v")
        assert exc.value.operation == "put"
        assert os.listdir(file_store.root) == ["blocked"]

    def test_delete_failure_is_store_error(self, file_store):
        (file_store.root / "blocked").mkdir()
        with pytest.raises(StoreError):
            file_store.delete("blocked")

    def test_path_escape_rejected(self, file_store):
        with pytest.raises(StoreError):
            file_store.put("../outside", b"x")
        assert not (file_store.root.parent / "outside").exists()


class TestMemoryStore:
    def test_basic_operations(self):
        store = MemoryStore()
        store.put("a", b"1")
        assert store.get("a") == b"1"
        assert len(store) == 1
        store.put("a", b"2")
        assert store.get("a") == b"2"
        store.delete("a")
        store.delete("a")
        assert store.get("a") is None
        assert list(store.keys()) == []


class TestLMDBStore:
    def test_put_get_delete(self, temp_dir):
        store = LMDBStore(StorageConfig(backend="lmdb", path=temp_dir, map_size=10 * 1024 * 1024))
        try:
            store.put("alpha", b"hello world")
            assert store.get("alpha") == b"hello world"
            store.put("alpha", b"v2")
            assert store.get("alpha") == b"v2"
            assert list(store.keys()) == ["alpha"]
            assert store.stats["entries"] == 1

            store.delete("alpha")
            store.delete("alpha")
            assert store.get("alpha") is None
        finally:
            store.close()

    def test_persists_across_reopen(self, temp_dir):
        config = StorageConfig(backend="lmdb", path=temp_dir, map_size=10 * 1024 * 1024)
        store = LMDBStore(config)
        store.put("k", b"v")
        store.close()

        reopened = LMDBStore(config)
        try:
            assert reopened.get("k") == b"v"
        finally:
            reopened.close()


def test_open_store_backends(temp_dir):
    assert isinstance(open_store(StorageConfig(backend="memory")), MemoryStore)
    assert isinstance(open_store(StorageConfig(backend="file", path=temp_dir)), FileStore)

    lmdb_store = open_store(
        StorageConfig(backend="lmdb", path=os.path.join(temp_dir, "db"), map_size=10 * 1024 * 1024)
    )
    try:
        assert isinstance(lmdb_store, LMDBStore)
    finally:
        lmdb_store.close()


class SlowStore(MemoryStore):
    """Records how many writes overlap."""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.max_active = 0
        self._count_lock = threading.Lock()

    def put(self, key, value):
        with self._count_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.01)
        super().put(key, value)
        with self._count_lock:
            self.active -= 1


class FailingStore(MemoryStore):
    def put(self, key, value):
        raise StoreError("disk full", key=key, operation="put")


@pytest.mark.asyncio
async def test_async_put_get_delete():
    store = AsyncStore(MemoryStore())
    try:
        await store.put("k", b"v")
        assert await store.get("k") == b"v"
        await store.delete("k")
        assert await store.get("k") is None
        assert store.pending_writes == 0
    finally:
        store.close()


@pytest.mark.asyncio
async def test_async_writes_to_same_key_are_serialized():
    backend = SlowStore()
    store = AsyncStore(backend, max_workers=4)
    try:
        values = [f"v{i}".encode() for i in range(5)]
        await asyncio.gather(*(store.put("same", v) for v in values))

        assert backend.max_active == 1
        assert await store.get("same") in values
        assert store.pending_writes == 0
    finally:
        store.close()


@pytest.mark.asyncio
async def test_async_store_error_propagates():
    store = AsyncStore(FailingStore())
    try:
        with pytest.raises(StoreError):
            await store.put("k", b"v")
        assert store.pending_writes == 0
    finally:
        store.close()
