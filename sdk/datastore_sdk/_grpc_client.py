"""
Internal gRPC client for the Datastore SDK.

This module provides the low-level gRPC communication layer.
It is internal to the SDK and should not be used directly by users.

Users should use DatastoreService instead, which provides the model API.

Messages are JSON documents (see codec) carried as raw gRPC payloads on
the methods /datastore.v1.Datastore/{AllocateIds,Lookup,Commit}.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

import grpc
from grpc import aio as grpc_aio

from .errors import (
    DatastoreError,
    DeadlineExceededError,
    InvalidArgumentError,
    UnavailableError,
)
from .options import DatastoreServiceOptions
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)

SERVICE_NAME = "datastore.v1.Datastore"
METHODS = ("AllocateIds", "Lookup", "Commit")


def _serialize(message: Dict[str, Any]) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def _deserialize(data: bytes) -> Dict[str, Any]:
    return json.loads(data.decode("utf-8"))


class GrpcDatastoreRpc(JsonRpcClient):
    """Internal gRPC client for the datastore.

    This class manages the channel lifecycle and maps gRPC status codes to
    SDK errors. The channel is opened lazily on the first call.

    This is an internal class - users should use DatastoreService instead.
    """

    def __init__(
        self,
        options: DatastoreServiceOptions,
        *,
        credentials: grpc.ChannelCredentials | None = None,
    ) -> None:
        """Initialize the gRPC client.

        Args:
            options: Client options (dataset, address, TLS, timeout)
            credentials: Optional TLS credentials
        """
        super().__init__(options.dataset)
        self._address = options.address
        self._secure = options.secure
        self._timeout = options.timeout_seconds
        self._credentials = credentials
        self._channel: grpc_aio.Channel | None = None
        self._calls: Dict[str, grpc_aio.UnaryUnaryMultiCallable] = {}

    async def connect(self) -> None:
        """Open the channel."""
        if self._channel is not None:
            return

        if self._secure:
            self._channel = grpc_aio.secure_channel(
                self._address,
                self._credentials or grpc.ssl_channel_credentials(),
            )
        else:
            self._channel = grpc_aio.insecure_channel(
                self._address,
                options=[
                    ("grpc.max_send_message_length", 50 * 1024 * 1024),
                    ("grpc.max_receive_message_length", 50 * 1024 * 1024),
                ],
            )

        for method in METHODS:
            self._calls[method] = self._channel.unary_unary(
                f"/{SERVICE_NAME}/{method}",
                request_serializer=_serialize,
                response_deserializer=_deserialize,
            )
        logger.debug(f"Opened channel to datastore at {self._address}")

    async def close(self) -> None:
        """Close the channel."""
        if self._channel:
            await self._channel.close()
            self._channel = None
            self._calls.clear()
            logger.debug("Closed datastore channel")

    async def __aenter__(self) -> GrpcDatastoreRpc:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _call(self, method: str, request: Dict[str, Any]) -> Dict[str, Any]:
        await self.connect()
        try:
            return await self._calls[method](request, timeout=self._timeout)
        except grpc_aio.AioRpcError as e:
            raise self._translate(method, e) from e

    def _translate(self, method: str, error: grpc_aio.AioRpcError) -> DatastoreError:
        """Map a gRPC status to an SDK error."""
        code = error.code()
        details = error.details() or code.name
        logger.warning(
            f"{method} failed: {details}",
            extra={"method": method, "status": code.name, "address": self._address},
        )
        if code == grpc.StatusCode.UNAVAILABLE:
            return UnavailableError(f"{method} failed: {details}", address=self._address)
        if code == grpc.StatusCode.DEADLINE_EXCEEDED:
            return DeadlineExceededError(f"{method} timed out: {details}", address=self._address)
        if code == grpc.StatusCode.INVALID_ARGUMENT:
            return InvalidArgumentError(f"{method} rejected: {details}")
        return DatastoreError(f"{method} failed: {details}", code=code.name)
