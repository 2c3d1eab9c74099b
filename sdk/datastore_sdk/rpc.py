"""
Remote datastore interface for the Datastore SDK.

DatastoreService never talks to the network directly. It depends on a
DatastoreRpc with three calls:
- allocate_ids: fresh numeric ids for key paths
- lookup: entities for keys, positionally aligned, None when absent
- commit: one atomic batch of insert/update/upsert/delete mutations

Implementations in this package:
- JsonRpcClient: encodes requests with the codec; base for transports
- LocalDatastoreRpc: dispatches JSON requests to an in-process handler
- GrpcDatastoreRpc (see _grpc_client): gRPC transport

Invariants:
    - commit() applies all mutations or none
    - lookup() returns exactly one slot per requested key, in order
    - Conflicts are reported through CommitResult, not exceptions
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .codec import decode_entity, decode_key, encode_entity, encode_key
from .entity import Entity
from .errors import DatastoreError, InvalidArgumentError
from .key import Key, PartialKey

logger = logging.getLogger(__name__)


class CommitStatus(Enum):
    """Outcome of a commit."""

    OK = "OK"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class Mutation:
    """One atomic batch of writes.

    Attributes:
        inserts: Entities that must not exist yet
        updates: Entities that must already exist
        upserts: Entities written unconditionally
        deletes: Keys removed if present
    """

    inserts: tuple[Entity, ...] = ()
    updates: tuple[Entity, ...] = ()
    upserts: tuple[Entity, ...] = ()
    deletes: tuple[Key, ...] = ()

    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.upserts or self.deletes)

    def keys(self) -> List[Key]:
        """All keys touched by this mutation, in submission order."""
        written = [e.key for e in (*self.inserts, *self.updates, *self.upserts)]
        return written + list(self.deletes)


@dataclass(frozen=True)
class CommitResult:
    """Result of a commit.

    Attributes:
        status: OK, ALREADY_EXISTS or NOT_FOUND
        keys: Offending keys when status is not OK
    """

    status: CommitStatus
    keys: tuple[Key, ...] = ()

    @property
    def success(self) -> bool:
        return self.status is CommitStatus.OK


@runtime_checkable
class DatastoreRpc(Protocol):
    """Interface to the remote datastore."""

    async def allocate_ids(self, keys: Sequence[PartialKey]) -> List[Key]:
        ...

    async def lookup(self, keys: Sequence[Key]) -> List[Optional[Entity]]:
        ...

    async def commit(self, mutation: Mutation) -> CommitResult:
        ...

    async def close(self) -> None:
        ...


class JsonRpcClient:
    """DatastoreRpc that exchanges JSON-compatible dicts.

    Subclasses implement _call(method, request) for a concrete transport.
    Method names are AllocateIds, Lookup and Commit.
    """

    def __init__(self, dataset: str) -> None:
        self.dataset = dataset

    async def _call(self, method: str, request: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def allocate_ids(self, keys: Sequence[PartialKey]) -> List[Key]:
        """Allocate one id per key.

        Keys may be complete; their identity is sent so the server never
        hands the same id back.
        """
        response = await self._call(
            "AllocateIds",
            {"dataset": self.dataset, "keys": [encode_key(k) for k in keys]},
        )
        allocated = [decode_key(k) for k in response.get("keys", [])]
        for key in allocated:
            if not isinstance(key, Key):
                raise DatastoreError(f"AllocateIds returned an incomplete key: {key}")
        return allocated  # type: ignore[return-value]

    async def lookup(self, keys: Sequence[Key]) -> List[Optional[Entity]]:
        response = await self._call(
            "Lookup",
            {"dataset": self.dataset, "keys": [encode_key(k) for k in keys]},
        )
        results: List[Optional[Entity]] = []
        for found in response.get("results", []):
            if found is None:
                results.append(None)
                continue
            entity = decode_entity(found)
            if not isinstance(entity, Entity):
                raise DatastoreError(f"Lookup returned a partial entity for {entity.key}")
            results.append(entity)
        return results

    async def commit(self, mutation: Mutation) -> CommitResult:
        request = {
            "dataset": self.dataset,
            "inserts": [encode_entity(e) for e in mutation.inserts],
            "updates": [encode_entity(e) for e in mutation.updates],
            "upserts": [encode_entity(e) for e in mutation.upserts],
            "deletes": [encode_key(k) for k in mutation.deletes],
        }
        response = await self._call("Commit", request)
        try:
            status = CommitStatus(response.get("status", CommitStatus.OK.value))
        except ValueError as e:
            raise DatastoreError(f"Unknown commit status: {response.get('status')!r}") from e
        keys = tuple(decode_key(k) for k in response.get("keys", []))
        return CommitResult(status=status, keys=keys)  # type: ignore[arg-type]

    async def close(self) -> None:
        return None


class LocalDatastoreRpc(JsonRpcClient):
    """DatastoreRpc that calls an in-process request handler.

    The handler exposes async allocate_ids/lookup/commit methods taking and
    returning request dicts (the server's DatastoreServicer does). Requests
    and responses go through a JSON round trip, like on the wire.

    Example:
        >>> servicer = DatastoreServicer(DatasetStore(tmpdir))
        >>> rpc = LocalDatastoreRpc(servicer, "dataset1")
        >>> datastore = DatastoreService(options, rpc=rpc)
    """

    _HANDLERS = {
        "AllocateIds": "allocate_ids",
        "Lookup": "lookup",
        "Commit": "commit",
    }

    def __init__(self, handler: Any, dataset: str) -> None:
        super().__init__(dataset)
        self._handler = handler

    async def _call(self, method: str, request: Dict[str, Any]) -> Dict[str, Any]:
        handle = getattr(self._handler, self._HANDLERS[method])
        try:
            response = await handle(json.loads(json.dumps(request)))
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
        logger.debug("Local %s call completed", method, extra={"dataset": self.dataset})
        return json.loads(json.dumps(response))
