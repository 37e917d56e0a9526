"""
kvline exceptions.

All errors inherit from KVError for easy catching.
"""

from typing import Any, Optional


class KVError(Exception):
    """Base exception for all kvline errors."""
    
    def __init__(self, message: str, code: str = "KV_ERROR"):
        super().__init__(message)
        self.code = code
        self.message = message


class ProtocolError(KVError):
    """Malformed or unrecognized request line."""
    
    def __init__(self, message: str, reason: Any = None):
        super().__init__(message, "PROTOCOL_ERROR")
        self.reason = reason


class ValidationError(KVError):
    """Key contains a forbidden character or is empty."""
    
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.key = key


class StoreError(KVError):
    """Storage backend failed for a reason other than absence."""
    
    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None
    ):
        super().__init__(message, "STORE_ERROR")
        self.key = key
        self.operation = operation


class ConnectionError(KVError):
    """Failed to connect to the server or the server closed early."""
    
    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message, "CONNECTION_ERROR")
        self.address = address


class TimeoutError(KVError):
    """Operation timed out."""
    
    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message, "TIMEOUT_ERROR")
        self.timeout = timeout
