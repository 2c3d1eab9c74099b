"""
API layer for the datastore server.

This module provides the gRPC interface:
- DatastoreServicer: JSON request handlers for AllocateIds, Lookup, Commit
- GrpcServer: grpc.aio server lifecycle

Invariants:
    - Handlers are shared by the gRPC server and in-process clients
    - Commit conflicts are reported in responses, not as transport errors
"""

from .grpc_server import SERVICE_NAME, DatastoreServicer, GrpcServer

__all__ = [
    "DatastoreServicer",
    "GrpcServer",
    "SERVICE_NAME",
]
