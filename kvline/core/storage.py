"""
Storage backends for the key-value namespace.

This module provides:
- KeyValueStore: Port every backend implements (get/put/delete)
- FileStore: One file per key under a storage root
- MemoryStore: Dict-backed store, used as the test fake
- LMDBStore: LMDB-backed store
- AsyncStore: Async facade with executor offload and per-key write locks

Keys reaching a store are already validated (see core.validation), so a
key maps 1:1 onto a location directly under the storage root.
"""

import asyncio
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Literal, Optional, Union

import lmdb
from pydantic import BaseModel, ConfigDict

from ..exceptions import StoreError

logger = logging.getLogger(__name__)

# Temp files carry a '.', which no valid key can contain
TEMP_SUFFIX = ".tmp"


def encode_key(key: str) -> bytes:
    """Encode a key to bytes, preserving undecodable input bytes."""
    return key.encode("utf-8", "surrogateescape")


class StorageConfig(BaseModel):
    """Configuration for a storage backend."""
    
    backend: Literal["file", "memory", "lmdb"] = "file"
    path: str = "data"
    map_size: int = 1024 * 1024 * 1024  # 1GB, LMDB only
    sync: bool = True
    
    model_config = ConfigDict(arbitrary_types_allowed=True)


class KeyValueStore(ABC):
    """Port for key-value storage operations."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Retrieve a value by key. Returns None if not found."""
        ...

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store a value by key. Fully replaces any existing value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete a key. Deleting an absent key is not an error."""
        ...

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Iterate over stored keys."""
        ...

    def close(self) -> None:
        """Release backend resources."""

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class FileStore(KeyValueStore):
    """
    One file per key under a storage root.
    
    Writes go to a temporary sibling and are moved into place with
    os.replace, so a concurrent reader sees the old or the new value,
    never a partial one.
    """

    def __init__(self, root: Union[Path, str], sync: bool = True) -> None:
        """
        Initialize file storage.
        
        Args:
            root: Directory holding one file per key (created if missing)
            sync: fsync each value before it becomes visible
        """
        self.root = Path(root).resolve()
        self.sync = sync
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = self.root / key
        if path.parent != self.root:
            raise StoreError(f"Key escapes storage root: {key!r}", key=key)
        return path

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {key!r}: {e}", key=key, operation="get") from e

    def put(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_SUFFIX}")
        try:
            with open(tmp, "wb") as f:
                f.write(value)
                f.flush()
                if self.sync:
                    os.fsync(f.fileno())
            os.replace(tmp, path)
        except (OSError, ValueError) as e:
            try:
                tmp.unlink(missing_ok=True)
            except (OSError, ValueError):
                pass
            raise StoreError(f"Failed to write {key!r}: {e}", key=key, operation="put") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to delete {key!r}: {e}", key=key, operation="delete") from e

    def keys(self) -> Iterator[str]:
        for entry in os.scandir(self.root):
            if entry.is_file() and "." not in entry.name:
                yield entry.name


class MemoryStore(KeyValueStore):
    """Dict-backed store. Safe to call from executor threads."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        with self._lock:
            snapshot = list(self._data)
        return iter(snapshot)

    def __len__(self) -> int:
        return len(self._data)


class LMDBStore(KeyValueStore):
    """
    Key-value storage using LMDB.
    
    Features:
    - Memory-mapped I/O for zero-copy reads
    - ACID transactions, so values are never observed half-written
    - Multi-reader, single-writer concurrency
    """

    def __init__(self, config: StorageConfig) -> None:
        """Initialize LMDB storage."""
        self.config = config
        path = Path(config.path)
        try:
            path.mkdir(parents=True, exist_ok=True)
            self._env: Optional[Any] = lmdb.open(
                str(path),
                map_size=config.map_size,
                sync=config.sync,
            )
        except (OSError, lmdb.Error) as e:
            raise StoreError(f"Failed to open LMDB at {path}: {e}", operation="open") from e

    @contextmanager
    def write(self):
        """Get a write transaction."""
        with self._env.begin(write=True) as txn:
            yield txn

    @contextmanager
    def read(self):
        """Get a read transaction."""
        with self._env.begin(write=False) as txn:
            yield txn

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self.read() as txn:
                return txn.get(encode_key(key))
        except lmdb.Error as e:
            raise StoreError(f"Failed to read {key!r}: {e}", key=key, operation="get") from e

    def put(self, key: str, value: bytes) -> None:
        try:
            with self.write() as txn:
                txn.put(encode_key(key), value)
        except lmdb.Error as e:
            raise StoreError(f"Failed to write {key!r}: {e}", key=key, operation="put") from e

    def delete(self, key: str) -> None:
        try:
            with self.write() as txn:
                txn.delete(encode_key(key))
        except lmdb.Error as e:
            raise StoreError(f"Failed to delete {key!r}: {e}", key=key, operation="delete") from e

    def keys(self) -> Iterator[str]:
        with self.read() as txn:
            snapshot = [k.decode("utf-8", "surrogateescape") for k, _ in txn.cursor()]
        return iter(snapshot)

    def close(self) -> None:
        """Close the environment."""
        if self._env:
            self._env.close()
            self._env = None

    @property
    def stats(self) -> dict:
        """Get storage statistics."""
        stat = self._env.stat()
        info = self._env.info()
        return {
            "entries": stat["entries"],
            "depth": stat["depth"],
            "map_size": info["map_size"],
            "last_txnid": info["last_txnid"],
        }


def open_store(config: StorageConfig) -> KeyValueStore:
    """Create the backend named by config.backend."""
    if config.backend == "memory":
        return MemoryStore()
    if config.backend == "lmdb":
        return LMDBStore(config)
    try:
        return FileStore(config.path, sync=config.sync)
    except OSError as e:
        raise StoreError(f"Unusable storage root {config.path}: {e}", operation="open") from e


class AsyncStore:
    """
    Async facade over a KeyValueStore.
    
    Backend calls run on a dedicated executor so blocking I/O never stalls
    the event loop. Writes to the same key are serialized by a per-key
    lock; reads take no lock and rely on the backend never exposing a
    partial value.
    """

    def __init__(self, store: KeyValueStore, max_workers: int = 4) -> None:
        self.store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="kvline_io"
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _write_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def get(self, key: str) -> Optional[bytes]:
        return await self._run(self.store.get, key)

    async def put(self, key: str, value: bytes) -> None:
        async with self._write_lock(key):
            await self._run(self.store.put, key, value)

    async def delete(self, key: str) -> None:
        async with self._write_lock(key):
            await self._run(self.store.delete, key)

    @property
    def pending_writes(self) -> int:
        """Number of keys with a write in progress or waiting."""
        return len(self._locks)

    def close(self) -> None:
        """Wait for queued backend calls, then close the backend."""
        self._executor.shutdown(wait=True)
        self.store.close()
