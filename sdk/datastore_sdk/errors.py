"""
Error types for the Datastore SDK.

This module defines all exception types raised by the SDK:
- DatastoreError: Base exception
- AlreadyExistsError: add() hit an occupied key
- NotFoundError: update() hit an unoccupied key
- UnavailableError: Remote service unreachable
- DeadlineExceededError: Remote call timed out
- InvalidArgumentError: Key, entity or value failed structural validation

Invariants:
    - All errors inherit from DatastoreError
    - Each failure kind has its own class and code so callers can branch on it
    - A raised AlreadyExistsError/NotFoundError means nothing in the batch was persisted
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from .key import Key


class DatastoreError(Exception):
    """Base exception for all Datastore SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DATASTORE_ERROR"
        self.details = details or {}


class AlreadyExistsError(DatastoreError):
    """Insert conflicted with a stored entity.

    Raised by add() when any target key already has a stored entity.
    The whole batch is rejected.

    Attributes:
        keys: Keys that were already occupied
    """

    def __init__(self, message: str, keys: Sequence[Key] = ()) -> None:
        super().__init__(
            message,
            code="ALREADY_EXISTS",
            details={"keys": [str(k) for k in keys]},
        )
        self.keys: Tuple[Key, ...] = tuple(keys)


class NotFoundError(DatastoreError):
    """Update targeted an unoccupied key.

    Raised by update() when any target key has no stored entity.
    The whole batch is rejected.

    Attributes:
        keys: Keys that had no stored entity
    """

    def __init__(self, message: str, keys: Sequence[Key] = ()) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"keys": [str(k) for k in keys]},
        )
        self.keys: Tuple[Key, ...] = tuple(keys)


class UnavailableError(DatastoreError):
    """Failed to reach the remote datastore.

    Raised when:
    - Server is unreachable
    - Connection was dropped mid-call
    """

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        code: str = "UNAVAILABLE",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"address": address},
        )
        self.address = address


class DeadlineExceededError(UnavailableError):
    """Remote call did not complete within the configured timeout."""

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        super().__init__(message, address=address, code="DEADLINE_EXCEEDED")


class InvalidArgumentError(DatastoreError):
    """A key, entity or value failed structural validation.

    Raised when:
    - A Key has both or neither of id and name
    - A value payload has the wrong type
    - A batch targets another dataset
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"field": field_name},
        )
        self.field_name = field_name
