"""
Wire protocol for the kvline server.

This module defines:
- Request parsing (one newline-terminated command line per connection)
- Response encoding and decoding
- Canonical error messages

Request grammar:
    SET <key> <value...>
    GET <key>
    DEL <key>

The value consumes the rest of the line verbatim, including inner
whitespace. Bytes are decoded as UTF-8 with surrogateescape, so every
byte sequence survives a SET/GET round trip unchanged.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..core.validation import INVALID_KEY_MESSAGE
from ..exceptions import ProtocolError

# Protocol constants
DEFAULT_MAX_REQUEST_SIZE = 1024
DEFAULT_MAX_KEY_LENGTH = 99
DEFAULT_MAX_VALUE_LENGTH = 1000

WIRE_ENCODING = "utf-8"
WIRE_ERRORS = "surrogateescape"

# Store failure messages
SET_FAILED_MESSAGE = "No se pudo guardar"
GET_FAILED_MESSAGE = "No se pudo leer"


class Command(str, Enum):
    """Commands understood by the server."""
    
    SET = "SET"
    GET = "GET"
    DEL = "DEL"
    INVALID = "INVALID"

    @classmethod
    def from_token(cls, token: str) -> "Command":
        """Case-sensitive lookup; anything unknown is INVALID."""
        if token in ("SET", "GET", "DEL"):
            return cls(token)
        return cls.INVALID


class ParseFailure(str, Enum):
    """Reasons a request line is rejected, valued by their reply text."""
    
    MISSING_COMMAND = "Falta comando"
    INVALID_COMMAND = "Comando invalido"
    MISSING_KEY = "Falta clave"
    MISSING_VALUE = "Falta valor"
    KEY_TOO_LONG = "Clave demasiado larga"
    VALUE_TOO_LONG = "Valor demasiado largo"
    REQUEST_TOO_LONG = "Peticion demasiado larga"

    def error(self) -> ProtocolError:
        return ProtocolError(self.value, reason=self)


@dataclass(frozen=True)
class Request:
    """A parsed request. value is only set for SET."""
    
    command: Command
    key: str
    value: Optional[bytes] = None


def parse_request(
    data: bytes,
    max_key_length: int = DEFAULT_MAX_KEY_LENGTH,
    max_value_length: int = DEFAULT_MAX_VALUE_LENGTH
) -> Request:
    """
    Parse one request line.
    
    Only the first line of data is considered. A trailing carriage return
    is dropped so CRLF clients behave like LF clients. Oversized keys and
    values are rejected, never truncated.
    
    Args:
        data: Raw bytes read from the connection
        max_key_length: Longest accepted key, in encoded bytes
        max_value_length: Longest accepted value, in bytes
        
    Returns:
        The parsed request
        
    Raises:
        ProtocolError: With reason set to the matching ParseFailure
    """
    text = data.decode(WIRE_ENCODING, WIRE_ERRORS)
    line = text.split("\n", 1)[0]
    if line.endswith("\r"):
        line = line[:-1]

    parts = line.split(None, 1)
    if not parts:
        raise ParseFailure.MISSING_COMMAND.error()

    command = Command.from_token(parts[0])
    if command is Command.INVALID:
        raise ParseFailure.INVALID_COMMAND.error()

    operands = parts[1].split(None, 1) if len(parts) > 1 else []
    if not operands:
        raise ParseFailure.MISSING_KEY.error()
    key = operands[0]

    value: Optional[bytes] = None
    if command is Command.SET:
        if len(operands) < 2:
            raise ParseFailure.MISSING_VALUE.error()
        value = operands[1].encode(WIRE_ENCODING, WIRE_ERRORS)

    if len(key.encode(WIRE_ENCODING, WIRE_ERRORS)) > max_key_length:
        raise ParseFailure.KEY_TOO_LONG.error()
    if value is not None and len(value) > max_value_length:
        raise ParseFailure.VALUE_TOO_LONG.error()

    return Request(command=command, key=key, value=value)


class Status(str, Enum):
    """First line of every reply."""
    
    OK = "OK"
    NOTFOUND = "NOTFOUND"
    ERROR = "ERROR"


class Response(BaseModel):
    """
    A reply to one request.
    
    Wire forms:
    - OK\\n
    - OK\\n<value>\\n
    - NOTFOUND\\n
    - ERROR: <message>\\n
    """
    
    status: Status
    value: Optional[bytes] = None
    message: Optional[str] = None
    
    model_config = ConfigDict(frozen=True)

    @classmethod
    def ok(cls, value: Optional[bytes] = None) -> "Response":
        return cls(status=Status.OK, value=value)

    @classmethod
    def not_found(cls) -> "Response":
        return cls(status=Status.NOTFOUND)

    @classmethod
    def error(cls, message: str) -> "Response":
        return cls(status=Status.ERROR, message=message)

    @classmethod
    def invalid_key(cls) -> "Response":
        return cls.error(INVALID_KEY_MESSAGE)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK

    def to_bytes(self) -> bytes:
        """Serialize response to wire bytes."""
        if self.status is Status.OK:
            if self.value is None:
                return b"OK\n"
            return b"OK\n" + self.value + b"\n"
        if self.status is Status.NOTFOUND:
            return b"NOTFOUND\n"
        return f"ERROR: {self.message}\n".encode(WIRE_ENCODING, WIRE_ERRORS)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Response":
        """
        Deserialize a reply read to EOF.
        
        Raises:
            ProtocolError: If data is not a recognizable reply
        """
        if data == b"OK\n":
            return cls.ok()
        if data.startswith(b"OK\n"):
            value = data[3:]
            if value.endswith(b"\n"):
                value = value[:-1]
            return cls.ok(value)
        if data == b"NOTFOUND\n":
            return cls.not_found()
        if data.startswith(b"ERROR"):
            text = data.decode(WIRE_ENCODING, "replace").rstrip("\r\n")
            message = text[len("ERROR"):].lstrip(":").strip()
            return cls.error(message)
        raise ProtocolError(f"Unrecognized reply: {data[:32]!r}")


def parse_response(data: bytes) -> Response:
    """Decode a reply read from the server."""
    return Response.from_bytes(data)
