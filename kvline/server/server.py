"""
Server entry point for the kvline key-value store.

This module provides:
- KVServer: TCP listener serving one request per connection
- CLI for running the server
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from ..config import ServerConfig, configure_logging
from ..core.storage import AsyncStore, KeyValueStore, open_store
from ..exceptions import StoreError
from ..network.handler import RequestHandler

logger = logging.getLogger(__name__)


class KVServer:
    """
    Accepts connections and hands each one to the request handler.
    
    Connections are served concurrently, one task each, up to
    config.max_connections at a time.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[KeyValueStore] = None
    ) -> None:
        """
        Initialize server.
        
        Args:
            config: Server configuration
            store: Backend to serve; built from config when omitted
        """
        self.config = config or ServerConfig()
        self._backend = store

        self.store: Optional[AsyncStore] = None
        self.handler: Optional[RequestHandler] = None

        self._server: Optional[asyncio.AbstractServer] = None
        self._slots: Optional[asyncio.Semaphore] = None
        self._connections: set[asyncio.Task] = set()
        self._shutdown = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound; differs from config.port when that is 0."""
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def start(self) -> None:
        """
        Open the store and start listening.
        
        Raises:
            StoreError: If the storage backend cannot be opened
            OSError: If the address cannot be bound
        """
        if self._running:
            return

        backend = self._backend or open_store(self.config.storage_config())
        self.store = AsyncStore(backend)
        self.handler = RequestHandler(self.store, self.config)
        self._slots = asyncio.Semaphore(self.config.max_connections)
        self._shutdown.clear()

        try:
            self._server = await asyncio.start_server(
                self._on_connection,
                self.config.host,
                self.config.port,
                reuse_address=True,
            )
        except OSError:
            self.store.close()
            self.store = None
            raise

        self._running = True

        logger.info("=" * 50)
        logger.info("kvline key-value server")
        logger.info("=" * 50)
        logger.info(f"Listening on: {self.config.host}:{self.bound_port}")
        logger.info(f"Backend: {self.config.backend} ({self.config.data_dir})")
        logger.info("=" * 50)

    async def _on_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        self._connections.add(task)
        try:
            async with self._slots:
                await self.handler.handle(reader, writer)
        finally:
            self._connections.discard(task)

    async def stop(self) -> None:
        """Stop accepting, drain in-flight connections, close the store."""
        if not self._running:
            return

        self._running = False
        self._server.close()

        if self._connections:
            logger.info(f"Waiting for {len(self._connections)} in-flight connection(s)")
            _, pending = await asyncio.wait(
                set(self._connections),
                timeout=self.config.shutdown_timeout
            )
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} connection(s) after shutdown timeout")
                await asyncio.gather(*pending, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None

        # Waits for queued backend calls; keep it off the event loop
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.close)
        self.store = None

        logger.info("Server stopped")

    def request_shutdown(self) -> None:
        """Ask run_forever to stop after in-flight connections finish."""
        self._shutdown.set()

    async def run_forever(self) -> None:
        """Run server until interrupted."""
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal():
            logger.info("Received shutdown signal...")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self._shutdown.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kvline-server",
        description="kvline key-value server"
    )

    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="JSON config file"
    )

    parser.add_argument(
        "--host",
        help="Host address to bind (default 0.0.0.0)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on (default 5000)"
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Storage root for the file and lmdb backends"
    )

    parser.add_argument(
        "--backend",
        choices=["file", "memory", "lmdb"],
        help="Storage backend (default file)"
    )

    parser.add_argument(
        "--read-timeout",
        type=float,
        help="Seconds to wait for a request before dropping the connection"
    )

    parser.add_argument(
        "--max-connections",
        type=int,
        help="Connections served at the same time"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Merge a config file, CLI flags and environment into one config."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "data_dir": args.data_dir,
        "backend": args.backend,
        "read_timeout": args.read_timeout,
        "max_connections": args.max_connections,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.debug:
        overrides["log_level"] = "DEBUG"

    if args.config:
        base = ServerConfig.load(args.config).to_dict()
        base.update(overrides)
        return ServerConfig(**base)
    return ServerConfig(**overrides)


def main(argv: Optional[list[str]] = None):
    """CLI entry point for the server."""
    args = build_parser().parse_args(argv)

    config = config_from_args(args)
    configure_logging(config.log_level, config.log_file)

    server = KVServer(config)

    try:
        asyncio.run(server.run_forever())
    except KeyboardInterrupt:
        pass
    except (OSError, StoreError) as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
