"""
gRPC server implementation for the datastore.

This module provides the gRPC API server that handles all client requests.
Messages are JSON documents carried as raw gRPC payloads; the service
registers generic handlers for:

    /datastore.v1.Datastore/AllocateIds
    /datastore.v1.Datastore/Lookup
    /datastore.v1.Datastore/Commit

Invariants:
    - Every request names its dataset and every key belongs to it
    - Commit conflicts are returned as a status in the response, not as
      gRPC errors
    - Malformed requests fail with INVALID_ARGUMENT
    - All errors are logged with structured context

How to change safely:
    - Add new RPCs without modifying existing ones
    - Only add optional fields to request/response documents
    - Test with both old and new clients
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict

import grpc
from grpc import aio as grpc_aio

from ..storage import DatasetStore, InvalidRequestError

logger = logging.getLogger(__name__)

SERVICE_NAME = "datastore.v1.Datastore"

Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _serialize(message: Dict[str, Any]) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def _deserialize(data: bytes) -> Dict[str, Any]:
    try:
        message = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidRequestError(f"request is not valid JSON: {e}") from e
    if not isinstance(message, dict):
        raise InvalidRequestError("request must be a JSON object")
    return message


class DatastoreServicer:
    """Request handlers for the datastore service.

    Each handler takes a request document and returns a response document.
    The same handlers back the gRPC server and in-process clients.

    Attributes:
        store: Dataset store for reads and writes
    """

    def __init__(self, store: DatasetStore) -> None:
        """Initialize the servicer.

        Args:
            store: DatasetStore instance
        """
        self.store = store

    def _dataset(self, request: Dict[str, Any]) -> str:
        dataset = request.get("dataset")
        if not isinstance(dataset, str) or not dataset:
            raise InvalidRequestError("dataset is required")
        return dataset

    def _list(self, request: Dict[str, Any], name: str) -> list[Any]:
        items = request.get(name) or []
        if not isinstance(items, list):
            raise InvalidRequestError(f"{name} must be a list")
        return items

    async def allocate_ids(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Allocate one id per requested key."""
        dataset = self._dataset(request)
        keys = await self.store.allocate_ids(dataset, self._list(request, "keys"))
        return {"keys": keys}

    async def lookup(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Look up entities, one result slot per key."""
        dataset = self._dataset(request)
        results = await self.store.lookup(dataset, self._list(request, "keys"))
        return {"results": results}

    async def commit(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Apply one atomic batch of mutations."""
        dataset = self._dataset(request)
        outcome = await self.store.commit(
            dataset,
            inserts=self._list(request, "inserts"),
            updates=self._list(request, "updates"),
            upserts=self._list(request, "upserts"),
            deletes=self._list(request, "deletes"),
        )
        if outcome.status != "OK":
            logger.info(
                f"Commit rejected: {outcome.status}",
                extra={"dataset": dataset, "status": outcome.status, "keys": len(outcome.keys)},
            )
        return {"status": outcome.status, "keys": outcome.keys}


class GrpcServer:
    """gRPC server wrapper for the datastore.

    This class manages the gRPC server lifecycle including:
    - Server initialization
    - Service registration
    - Graceful shutdown

    Example:
        >>> server = GrpcServer(servicer, port=8080)
        >>> await server.start()
        >>> # Server is now running
        >>> await server.stop()
    """

    def __init__(
        self,
        servicer: DatastoreServicer,
        host: str = "0.0.0.0",
        port: int = 8080,
        max_message_size: int = 64 * 1024 * 1024,
    ) -> None:
        """Initialize the gRPC server.

        Args:
            servicer: DatastoreServicer instance
            host: Host to bind to
            port: Port to listen on (0 picks a free port)
            max_message_size: Maximum message size in bytes
        """
        self.servicer = servicer
        self.host = host
        self.port = port
        self.max_message_size = max_message_size
        self._server: grpc_aio.Server | None = None
        self._running = False

    def _method_handler(self, method: str, handle: Handler) -> grpc.RpcMethodHandler:
        # Requests arrive as raw bytes so decoding errors map to INVALID_ARGUMENT.
        # context.abort() raises, so no handler below falls through
        async def behavior(request: bytes, context: grpc_aio.ServicerContext) -> Any:
            try:
                return await handle(_deserialize(request))
            except InvalidRequestError as e:
                logger.warning(f"{method} rejected: {e}", extra={"method": method})
                await context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))
            except Exception as e:
                logger.error(f"{method} failed: {e}", exc_info=True, extra={"method": method})
                await context.abort(grpc.StatusCode.INTERNAL, f"{method} failed")

        return grpc.unary_unary_rpc_method_handler(
            behavior,
            response_serializer=_serialize,
        )

    async def start(self) -> None:
        """Start the gRPC server."""
        if self._running:
            logger.warning("Server already running")
            return

        self._server = grpc_aio.server(
            options=[
                ("grpc.max_send_message_length", self.max_message_size),
                ("grpc.max_receive_message_length", self.max_message_size),
            ]
        )
        handlers = grpc.method_handlers_generic_handler(
            SERVICE_NAME,
            {
                "AllocateIds": self._method_handler("AllocateIds", self.servicer.allocate_ids),
                "Lookup": self._method_handler("Lookup", self.servicer.lookup),
                "Commit": self._method_handler("Commit", self.servicer.commit),
            },
        )
        self._server.add_generic_rpc_handlers((handlers,))
        self.port = self._server.add_insecure_port(f"{self.host}:{self.port}")
        await self._server.start()
        self._running = True

        logger.info(
            f"gRPC server started on {self.host}:{self.port}",
            extra={"host": self.host, "port": self.port},
        )

    async def stop(self, grace_period: float = 5.0) -> None:
        """Stop the gRPC server gracefully.

        Args:
            grace_period: Time to wait for pending RPCs to complete
        """
        if not self._running:
            return

        logger.info("Stopping gRPC server")
        self._running = False

        if self._server:
            await self._server.stop(grace_period)
            self._server = None

    async def wait_for_termination(self) -> None:
        if self._server:
            await self._server.wait_for_termination()

    @property
    def is_running(self) -> bool:
        """Whether the server is running."""
        return self._running
