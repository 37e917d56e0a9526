"""
Per-connection request handling.

One connection carries exactly one request:
read -> parse -> validate key -> dispatch to store -> respond -> close.
Nothing is retained between connections.
"""

import asyncio
import logging
from typing import Optional

from ..config import ServerConfig
from ..core.storage import AsyncStore
from ..core.validation import validate_key
from ..exceptions import ProtocolError, StoreError, ValidationError
from .protocol import (
    Command,
    ParseFailure,
    Request,
    Response,
    Status,
    parse_request,
    SET_FAILED_MESSAGE,
    GET_FAILED_MESSAGE,
)

logger = logging.getLogger(__name__)


class RequestHandler:
    """
    Turns one connection's request into one response.
    
    Protocol, validation and store failures are all converted to an
    ERROR reply here; none of them reaches the listener.
    """

    def __init__(
        self,
        store: AsyncStore,
        config: Optional[ServerConfig] = None
    ) -> None:
        """
        Initialize request handler.
        
        Args:
            store: Async store the commands run against
            config: Protocol limits and timeouts
        """
        self.store = store
        self.config = config or ServerConfig()
        self.stats = {
            "requests": 0,
            "errors": 0,
            "dropped": 0,
        }

    async def handle(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        """Serve one connection and close it."""
        peer = writer.get_extra_info("peername")
        try:
            data = await self._read_request(reader, peer)
            if data is None:
                return

            if len(data) > self.config.max_request_size:
                self.stats["errors"] += 1
                response = Response.error(ParseFailure.REQUEST_TOO_LONG.value)
            else:
                response = await self.process(data)

            await self._send(writer, response, peer)
        except Exception:
            logger.exception(f"Unexpected error while serving {peer}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def _read_request(
        self,
        reader: asyncio.StreamReader,
        peer
    ) -> Optional[bytes]:
        """Single bounded read. None means close without replying."""
        try:
            data = await asyncio.wait_for(
                reader.read(self.config.max_request_size + 1),
                timeout=self.config.read_timeout
            )
        except asyncio.TimeoutError:
            logger.info(f"No request from {peer} within {self.config.read_timeout}s, closing")
            self.stats["dropped"] += 1
            return None
        except OSError as e:
            logger.info(f"Read from {peer} failed: {e}")
            self.stats["dropped"] += 1
            return None

        if not data:
            logger.info(f"{peer} closed without sending a request")
            self.stats["dropped"] += 1
            return None
        return data

    async def _send(
        self,
        writer: asyncio.StreamWriter,
        response: Response,
        peer
    ) -> None:
        try:
            writer.write(response.to_bytes())
            await writer.drain()
        except OSError as e:
            logger.info(f"Write to {peer} failed: {e}")
            self.stats["dropped"] += 1

    async def process(self, data: bytes) -> Response:
        """Parse raw request bytes and execute them."""
        self.stats["requests"] += 1
        try:
            request = parse_request(
                data,
                max_key_length=self.config.max_key_length,
                max_value_length=self.config.max_value_length,
            )
        except ProtocolError as e:
            logger.debug(f"Rejected request: {e.message}")
            self.stats["errors"] += 1
            return Response.error(e.message)

        response = await self.execute(request)
        if response.status is Status.ERROR:
            self.stats["errors"] += 1
        return response

    async def execute(self, request: Request) -> Response:
        """Validate the key and dispatch to the store."""
        if request.command is Command.INVALID:
            return Response.error(ParseFailure.INVALID_COMMAND.value)

        try:
            key = validate_key(request.key)
        except ValidationError:
            logger.debug(f"{request.command.value} rejected: invalid key {request.key!r}")
            return Response.invalid_key()

        logger.debug(f"{request.command.value} {key}")

        if request.command is Command.SET:
            try:
                await self.store.put(key, request.value)
            except StoreError as e:
                logger.error(f"SET {key} failed: {e.message}")
                return Response.error(SET_FAILED_MESSAGE)
            return Response.ok()

        if request.command is Command.GET:
            try:
                value = await self.store.get(key)
            except StoreError as e:
                logger.error(f"GET {key} failed: {e.message}")
                return Response.error(GET_FAILED_MESSAGE)
            if value is None:
                return Response.not_found()
            return Response.ok(value)

        try:
            await self.store.delete(key)
        except StoreError as e:
            logger.error(f"DEL {key} failed, replying OK: {e.message}")
        return Response.ok()
