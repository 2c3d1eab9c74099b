"""
Batch writer for the Datastore SDK.

A BatchWriter collects add/update/put/delete mutations and submits them
as one atomic commit. Validation happens as mutations are added; nothing
is sent until submit().

Example:
    >>> batch = datastore.new_batch_writer()
    >>> batch.add(task).put(project).delete(old_key)
    >>> await batch.submit()

Invariants:
    - A writer is submitted at most once
    - The whole batch succeeds or none of it is applied
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .entity import Entity
from .errors import DatastoreError
from .key import Key
from .rpc import Mutation

if TYPE_CHECKING:
    from .client import DatastoreService


class BatchWriter:
    """Atomic batch of mutations.

    Created through DatastoreService.new_batch_writer().
    """

    def __init__(self, service: DatastoreService) -> None:
        self._service = service
        self._inserts: list[Entity] = []
        self._updates: list[Entity] = []
        self._upserts: list[Entity] = []
        self._deletes: list[Key] = []
        self._submitted = False

    @property
    def active(self) -> bool:
        """Whether mutations can still be added."""
        return not self._submitted

    def _ensure_active(self) -> None:
        if self._submitted:
            raise DatastoreError("Batch writer was already submitted", code="FAILED_PRECONDITION")

    def add(self, *entities: Entity) -> BatchWriter:
        """Queue inserts (must not exist at commit time)."""
        self._ensure_active()
        self._inserts.extend(self._service._check_entities(entities))
        return self

    def update(self, *entities: Entity) -> BatchWriter:
        """Queue full replacements (must exist at commit time)."""
        self._ensure_active()
        self._updates.extend(self._service._check_entities(entities))
        return self

    def put(self, *entities: Entity) -> BatchWriter:
        self._ensure_active()
        self._upserts.extend(self._service._check_entities(entities))
        return self

    def delete(self, *keys: Key) -> BatchWriter:
        self._ensure_active()
        for key in keys:
            self._service._check_key(key)
            if key not in self._deletes:
                self._deletes.append(key)
        return self

    async def submit(self) -> None:
        """Commit all queued mutations atomically.

        Raises:
            AlreadyExistsError: If a queued insert targets a stored key
            NotFoundError: If a queued update targets an absent key
        """
        self._ensure_active()
        self._submitted = True
        await self._service._commit(
            Mutation(
                inserts=tuple(self._inserts),
                updates=tuple(self._updates),
                upserts=tuple(self._upserts),
                deletes=tuple(self._deletes),
            )
        )
