"""
Client for the kvline server.

Every command opens its own connection: connect, send one line,
read the reply to EOF, disconnect.
"""

import asyncio
import logging
from typing import Optional

from ..exceptions import ConnectionError, KVError, TimeoutError
from ..network.protocol import Response, Status, WIRE_ENCODING, WIRE_ERRORS

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5000


class KVClient:
    """Async client issuing one request per connection."""
    
    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout: float = 5.0
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def send(self, line: str) -> Response:
        """
        Send one raw request line and return the decoded reply.
        
        Raises:
            ConnectionError: If the server is unreachable or closes early
            TimeoutError: If no complete reply arrives within the timeout
        """
        payload = line.encode(WIRE_ENCODING, WIRE_ERRORS)
        if not payload.endswith(b"\n"):
            payload += b"\n"
        try:
            data = await asyncio.wait_for(self._exchange(payload), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"No reply from {self.address} within {self.timeout}s",
                timeout=self.timeout
            ) from e
        except OSError as e:
            raise ConnectionError(f"Cannot reach {self.address}: {e}", address=self.address) from e

        if not data:
            raise ConnectionError(f"{self.address} closed without replying", address=self.address)
        return Response.from_bytes(data)

    async def _exchange(self, payload: bytes) -> bytes:
        reader, writer = await asyncio.open_connection(self.host, self.port)
        try:
            writer.write(payload)
            await writer.drain()
            if writer.can_write_eof():
                writer.write_eof()
            return await reader.read()
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def set(self, key: str, value: str) -> Response:
        return await self.send(f"SET {key} {value}")

    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, or None when the key is absent."""
        response = await self.send(f"GET {key}")
        if response.is_ok:
            return response.value
        if response.status is Status.NOTFOUND:
            return None
        raise KVError(response.message or "request failed", code="SERVER_ERROR")

    async def delete(self, key: str) -> Response:
        return await self.send(f"DEL {key}")
