"""
Core storage and validation components.

This package provides:
- Key validation shared by every command
- KeyValueStore port and its file, memory and LMDB backends
- AsyncStore facade used by the request handler
"""

from .validation import FORBIDDEN_KEY_CHARS, is_valid_key, validate_key
from .storage import (
    AsyncStore,
    FileStore,
    KeyValueStore,
    LMDBStore,
    MemoryStore,
    StorageConfig,
    open_store,
)

__all__ = [
    "FORBIDDEN_KEY_CHARS",
    "is_valid_key",
    "validate_key",
    "AsyncStore",
    "FileStore",
    "KeyValueStore",
    "LMDBStore",
    "MemoryStore",
    "StorageConfig",
    "open_store",
]
