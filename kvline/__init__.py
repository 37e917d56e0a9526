"""
kvline - a minimal network key-value store.

A server listens on a TCP port, reads one textual command per
connection, runs it against a key-value namespace and replies:

    SET <key> <value...>  ->  OK
    GET <key>             ->  OK\\n<value>  |  NOTFOUND
    DEL <key>             ->  OK

Quick Start:
    from kvline import KVServer, ServerConfig
    
    server = KVServer(ServerConfig(port=5000, data_dir="data"))
    await server.run_forever()
"""

from .config import ServerConfig
from .core.storage import (
    AsyncStore,
    FileStore,
    KeyValueStore,
    LMDBStore,
    MemoryStore,
    StorageConfig,
    open_store,
)
from .core.validation import is_valid_key
from .exceptions import (
    KVError,
    ProtocolError,
    ValidationError,
    StoreError,
    ConnectionError,
    TimeoutError,
)
from .network.handler import RequestHandler
from .network.protocol import Command, Request, Response, parse_request
from .server.server import KVServer
from .client.client import KVClient

__version__ = "1.0.0"

__all__ = [
    # Server
    "KVServer",
    "ServerConfig",
    "RequestHandler",
    # Client
    "KVClient",
    # Protocol
    "Command",
    "Request",
    "Response",
    "parse_request",
    "is_valid_key",
    # Storage
    "KeyValueStore",
    "FileStore",
    "MemoryStore",
    "LMDBStore",
    "AsyncStore",
    "StorageConfig",
    "open_store",
    # Exceptions
    "KVError",
    "ProtocolError",
    "ValidationError",
    "StoreError",
    "ConnectionError",
    "TimeoutError",
    # Version
    "__version__",
]
