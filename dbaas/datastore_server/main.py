"""
Datastore Server - Main entry point.

This module starts the datastore server:
- Dataset store (SQLite, one file per dataset)
- gRPC server (AllocateIds, Lookup, Commit)

Usage:
    python -m dbaas.datastore_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is ready before the gRPC server accepts requests
    - Graceful shutdown waits for in-flight RPCs

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import json_log_formatter

from .api import DatastoreServicer, GrpcServer
from .config import ServerConfig
from .storage import DatasetStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("grpc").setLevel(logging.WARNING)


class Server:
    """Datastore server orchestrator.

    Manages the lifecycle of the server components.

    Attributes:
        config: Server configuration
        store: Dataset store
        servicer: Request handlers
        grpc_server: gRPC server

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running until request_shutdown()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.store: DatasetStore | None = None
        self.servicer: DatastoreServicer | None = None
        self.grpc_server: GrpcServer | None = None

    async def start(self) -> None:
        """Start the server and block until shutdown is requested."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting datastore server")
        self.config.log_config()

        try:
            data_dir = Path(self.config.storage.data_dir)
            data_dir.mkdir(parents=True, exist_ok=True)

            self.store = DatasetStore(
                data_dir=str(data_dir),
                wal_mode=self.config.storage.wal_mode,
                busy_timeout_ms=self.config.storage.busy_timeout_ms,
                cache_size_pages=self.config.storage.cache_size_pages,
            )
            self.servicer = DatastoreServicer(self.store)

            self.grpc_server = GrpcServer(
                servicer=self.servicer,
                host=self.config.grpc.host,
                port=self.config.grpc.port,
                max_message_size=self.config.grpc.max_message_size,
            )
            await self.grpc_server.start()

            self._running = True
            logger.info("Datastore server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self.grpc_server:
            await self.grpc_server.stop(self.config.grpc.shutdown_grace_seconds)

        if self._running:
            self._running = False
            logger.info("Datastore server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
