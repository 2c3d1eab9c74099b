"""
Datastore client for the Python SDK.

This module provides the main client interface:
- DatastoreService: CRUD and id allocation against a remote datastore
- create_service: Factory building a service from options

Example:
    >>> options = DatastoreServiceOptions(dataset="dataset1", host="localhost:8080")
    >>> async with create_service(options) as datastore:
    ...     key = await datastore.new_key_builder("Task").allocate_id_and_build()
    ...     await datastore.add(EntityBuilder(key).set("title", "My Task").build())
    ...     entity = await datastore.get(key)

Invariants:
    - get_many() returns one slot per requested key, in request order
    - add() fails with AlreadyExistsError and update() with NotFoundError
      without persisting any entity of the batch
    - put() and delete() never fail on existence
    - options is the exact object passed at construction
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from ._grpc_client import GrpcDatastoreRpc
from .batch import BatchWriter
from .entity import Entity
from .errors import (
    AlreadyExistsError,
    DatastoreError,
    InvalidArgumentError,
    NotFoundError,
)
from .key import Key, KeyBuilder, PartialKey
from .options import DatastoreServiceOptions
from .rpc import CommitStatus, DatastoreRpc, Mutation

logger = logging.getLogger(__name__)


class DatastoreService:
    """Client for a remote datastore.

    Every data operation is a coroutine that suspends the calling task
    until the remote datastore answers.

    Example:
        >>> datastore = DatastoreService(options, rpc=LocalDatastoreRpc(servicer, "dataset1"))
        >>> entities = await datastore.get_many(key1, key2)
    """

    def __init__(
        self,
        options: DatastoreServiceOptions,
        rpc: DatastoreRpc | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            options: Client options
            rpc: Remote datastore interface (gRPC transport when omitted)
        """
        self._options = options
        self._rpc: DatastoreRpc = rpc if rpc is not None else GrpcDatastoreRpc(options)

    @property
    def options(self) -> DatastoreServiceOptions:
        """The options instance this service was created with."""
        return self._options

    def get_options(self) -> DatastoreServiceOptions:
        return self._options

    async def close(self) -> None:
        """Release the transport."""
        await self._rpc.close()

    async def __aenter__(self) -> DatastoreService:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def new_key_builder(self, kind: str) -> KeyBuilder:
        """Create a key builder seeded with this service's dataset and namespace.

        The builder is bound to the service, so allocate_id_and_build() works.
        """
        return KeyBuilder(
            self._options.dataset,
            kind,
            namespace=self._options.namespace,
            service=self,
        )

    def new_batch_writer(self) -> BatchWriter:
        """Create a writer that submits several mutations as one atomic commit."""
        return BatchWriter(self)

    def new_transaction(self) -> Any:
        """Transactions are not supported by this client."""
        raise NotImplementedError("Transactions are not supported by this client")

    async def allocate_id(self, key: PartialKey) -> Key:
        """Allocate a fresh id for a key path.

        Args:
            key: PartialKey, or Key whose identity is replaced

        Returns:
            key.to_key(new_id); never equal to the input
        """
        allocated = await self.allocate_ids(key)
        return allocated[0]

    async def allocate_ids(self, *keys: PartialKey) -> List[Key]:
        """Allocate one fresh id per key.

        Returns:
            Allocated keys in argument order
        """
        if not keys:
            return []
        for key in keys:
            self._check_key(key, require_complete=False)

        allocated = await self._rpc.allocate_ids(list(keys))
        if len(allocated) != len(keys):
            raise DatastoreError(
                f"AllocateIds returned {len(allocated)} keys for {len(keys)} requested"
            )
        for requested, key in zip(keys, allocated):
            if key.partial_key() != requested.partial_key() or key == requested:
                raise DatastoreError(f"AllocateIds returned {key} for {requested}")

        logger.debug(
            "Allocated ids",
            extra={"dataset": self._options.dataset, "count": len(allocated)},
        )
        return allocated

    async def get(self, key: Key) -> Optional[Entity]:
        """Get one entity.

        Returns:
            The stored Entity, or None if absent
        """
        results = await self.get_many(key)
        return results[0]

    async def get_many(self, *keys: Key) -> List[Optional[Entity]]:
        """Get several entities.

        Returns:
            One slot per key in request order, None for absent keys
        """
        if not keys:
            return []
        for key in keys:
            self._check_key(key)

        results = await self._rpc.lookup(list(keys))
        if len(results) != len(keys):
            raise DatastoreError(f"Lookup returned {len(results)} results for {len(keys)} keys")
        for key, entity in zip(keys, results):
            if entity is not None and entity.key != key:
                raise DatastoreError(f"Lookup returned {entity.key} in the slot for {key}")
        return results

    async def add(self, *entities: Entity) -> None:
        """Insert entities.

        Raises:
            AlreadyExistsError: If any key is already stored; nothing is written
        """
        await self._commit(Mutation(inserts=self._check_entities(entities)))

    async def update(self, *entities: Entity) -> None:
        """Replace the full property set of existing entities.

        Raises:
            NotFoundError: If any key is not stored; nothing is written
        """
        await self._commit(Mutation(updates=self._check_entities(entities)))

    async def put(self, *entities: Entity) -> None:
        """Insert or replace entities."""
        await self._commit(Mutation(upserts=self._check_entities(entities)))

    async def delete(self, *keys: Key) -> None:
        """Delete entities; absent keys are ignored."""
        for key in keys:
            self._check_key(key)
        await self._commit(Mutation(deletes=tuple(dict.fromkeys(keys))))

    def _check_key(self, key: Any, require_complete: bool = True) -> None:
        expected = Key if require_complete else PartialKey
        if not isinstance(key, expected):
            raise InvalidArgumentError(
                f"expected {expected.__name__}, got {type(key).__name__}", field_name="key"
            )
        if key.dataset != self._options.dataset:
            raise InvalidArgumentError(
                f"key {key} is not in dataset '{self._options.dataset}'", field_name="dataset"
            )

    def _check_entities(self, entities: Iterable[Any]) -> tuple[Entity, ...]:
        checked = []
        for entity in entities:
            if not isinstance(entity, Entity):
                raise InvalidArgumentError(
                    f"expected Entity, got {type(entity).__name__}", field_name="entity"
                )
            self._check_key(entity.key)
            checked.append(entity)
        return tuple(checked)

    async def _commit(self, mutation: Mutation) -> None:
        """Validate and submit one atomic mutation."""
        if mutation.is_empty():
            return

        seen: set[Key] = set()
        for key in mutation.keys():
            if key in seen:
                raise InvalidArgumentError(
                    f"key {key} appears more than once in a single commit", field_name="key"
                )
            seen.add(key)

        result = await self._rpc.commit(mutation)

        if result.status is CommitStatus.ALREADY_EXISTS:
            raise AlreadyExistsError(
                f"Entities already exist: {', '.join(str(k) for k in result.keys)}",
                keys=result.keys,
            )
        if result.status is CommitStatus.NOT_FOUND:
            raise NotFoundError(
                f"Entities not found: {', '.join(str(k) for k in result.keys)}",
                keys=result.keys,
            )

        logger.debug(
            "Committed mutation",
            extra={
                "dataset": self._options.dataset,
                "inserts": len(mutation.inserts),
                "updates": len(mutation.updates),
                "upserts": len(mutation.upserts),
                "deletes": len(mutation.deletes),
            },
        )


def create_service(
    options: DatastoreServiceOptions,
    rpc: DatastoreRpc | None = None,
) -> DatastoreService:
    """Create a DatastoreService for the given options.

    Args:
        options: Client options
        rpc: Optional remote datastore interface (gRPC when omitted)
    """
    return DatastoreService(options, rpc=rpc)
