"""
Datastore Python SDK - Client library for a hierarchical entity datastore.

This SDK provides a typed interface to a schema-less entity store:
- Keys with ancestor paths (PartialKey, Key, KeyBuilder)
- Typed, immutable property values (StringValue, BooleanValue, ...)
- Entities built with copy-on-write builders
- DatastoreService for get/add/update/put/delete and id allocation

Example:
    >>> from datastore_sdk import DatastoreServiceOptions, EntityBuilder, create_service
    >>>
    >>> options = DatastoreServiceOptions(dataset="dataset1", host="localhost:8080")
    >>> async with create_service(options) as datastore:
    ...     key = datastore.new_key_builder("Task").build("task-1")
    ...     await datastore.put(EntityBuilder(key).set("title", "My Task").build())
    ...     entity = await datastore.get(key)

Invariants:
    - Keys, values and entities are immutable
    - Multi-key reads are positionally aligned with the request
    - add/update batches are all-or-nothing

Version: 1.0.0
"""

__version__ = "1.0.0"

from .batch import BatchWriter
from .client import DatastoreService, create_service
from .entity import Entity, EntityBuilder, PartialEntity, PartialEntityBuilder
from .errors import (
    AlreadyExistsError,
    DatastoreError,
    DeadlineExceededError,
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
)
from .key import Key, KeyBuilder, PartialKey, PathElement
from .options import DatastoreServiceOptions
from .rpc import CommitResult, CommitStatus, DatastoreRpc, LocalDatastoreRpc, Mutation
from .value import (
    BlobValue,
    BooleanValue,
    DoubleValue,
    IntegerValue,
    KeyValue,
    ListValue,
    NullValue,
    PartialEntityValue,
    StringValue,
    TimestampValue,
    Value,
    ValueBuilder,
    value_of,
)

__all__ = [
    # Version
    "__version__",
    # Keys
    "PathElement",
    "PartialKey",
    "Key",
    "KeyBuilder",
    # Values
    "Value",
    "ValueBuilder",
    "NullValue",
    "StringValue",
    "BooleanValue",
    "IntegerValue",
    "DoubleValue",
    "TimestampValue",
    "BlobValue",
    "KeyValue",
    "PartialEntityValue",
    "ListValue",
    "value_of",
    # Entities
    "PartialEntity",
    "Entity",
    "PartialEntityBuilder",
    "EntityBuilder",
    # Client
    "DatastoreServiceOptions",
    "DatastoreService",
    "BatchWriter",
    "create_service",
    # Remote interface
    "DatastoreRpc",
    "LocalDatastoreRpc",
    "Mutation",
    "CommitResult",
    "CommitStatus",
    # Errors
    "DatastoreError",
    "AlreadyExistsError",
    "NotFoundError",
    "UnavailableError",
    "DeadlineExceededError",
    "InvalidArgumentError",
]
