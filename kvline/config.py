"""
kvline server configuration.

Provides sensible defaults with override capability.
"""

from pydantic import BaseModel, ConfigDict, Field
from pathlib import Path
from typing import Any, Literal, Optional
import json
import logging
import os

from .core.storage import StorageConfig
from .network.protocol import (
    DEFAULT_MAX_KEY_LENGTH,
    DEFAULT_MAX_REQUEST_SIZE,
    DEFAULT_MAX_VALUE_LENGTH,
)

DEFAULT_PORT = 5000


class ServerConfig(BaseModel):
    """
    Configuration for the kvline server.
    
    Environment variables (KVLINE_* prefix) override defaults for any
    field that was not passed explicitly.
    """
    
    # Network
    host: str = "0.0.0.0"
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    max_connections: int = Field(default=64, ge=1)
    
    # Timeouts (seconds)
    read_timeout: float = Field(default=10.0, gt=0)
    shutdown_timeout: float = Field(default=5.0, ge=0)
    
    # Protocol limits
    max_request_size: int = Field(default=DEFAULT_MAX_REQUEST_SIZE, ge=16)
    max_key_length: int = Field(default=DEFAULT_MAX_KEY_LENGTH, ge=1)
    max_value_length: int = Field(default=DEFAULT_MAX_VALUE_LENGTH, ge=1)
    
    # Storage
    backend: Literal["file", "memory", "lmdb"] = "file"
    data_dir: Path = Field(default_factory=lambda: Path("data"))
    
    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    
    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)
    
    def model_post_init(self, __context):
        """Apply environment variable overrides."""
        self._apply_env_overrides()
    
    def _apply_env_overrides(self):
        """Override config from environment variables."""
        env_map = {
            "KVLINE_HOST": ("host", str),
            "KVLINE_PORT": ("port", int),
            "KVLINE_DATA_DIR": ("data_dir", Path),
            "KVLINE_BACKEND": ("backend", str),
            "KVLINE_READ_TIMEOUT": ("read_timeout", float),
            "KVLINE_MAX_CONNECTIONS": ("max_connections", int),
            "KVLINE_LOG_LEVEL": ("log_level", str),
        }
        
        for env_var, (attr, type_fn) in env_map.items():
            if attr in self.model_fields_set:
                continue
            value = os.environ.get(env_var)
            if value is not None:
                setattr(self, attr, type_fn(value))
    
    def storage_config(self) -> StorageConfig:
        """Storage settings derived from this config."""
        return StorageConfig(backend=self.backend, path=str(self.data_dir))
    
    def to_dict(self) -> dict[str, Any]:
        """Export config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "max_connections": self.max_connections,
            "read_timeout": self.read_timeout,
            "shutdown_timeout": self.shutdown_timeout,
            "max_request_size": self.max_request_size,
            "max_key_length": self.max_key_length,
            "max_value_length": self.max_value_length,
            "backend": self.backend,
            "data_dir": str(self.data_dir),
            "log_level": self.log_level,
            "log_file": self.log_file,
        }
    
    def save(self, path: Path):
        """Save config to a JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
    
    @classmethod
    def load(cls, path: Path) -> "ServerConfig":
        """Load config from a JSON file. Missing fields keep their defaults."""
        with open(path) as f:
            data = json.load(f)
        
        return cls(**data)
    
    @classmethod
    def development(cls) -> "ServerConfig":
        """Local config: loopback only, in-memory store, verbose logging."""
        return cls(
            host="127.0.0.1",
            backend="memory",
            log_level="DEBUG",
        )


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging for the entry points."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
