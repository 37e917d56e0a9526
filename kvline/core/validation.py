"""
Key validation.

A key names a storage location, so it must never be able to escape the
storage root or split into extra protocol tokens.
"""

from typing import Optional

from ..exceptions import ValidationError

FORBIDDEN_KEY_CHARS = frozenset("/\\. ")

INVALID_KEY_MESSAGE = "Clave invalida"


def is_valid_key(key: Optional[str]) -> bool:
    """Return True if key is non-empty and has no forbidden character."""
    if not key:
        return False
    return not any(ch in FORBIDDEN_KEY_CHARS for ch in key)


def validate_key(key: Optional[str]) -> str:
    """
    Validate a key before it reaches a store.
    
    Raises:
        ValidationError: If the key is empty or contains '/', '\\', '.' or space
    """
    if not is_valid_key(key):
        raise ValidationError(INVALID_KEY_MESSAGE, key=key)
    return key
