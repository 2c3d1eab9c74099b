"""
Storage layer for the datastore server.

This module provides the per-dataset SQLite store that holds entities
and the id allocation sequence.

Invariants:
    - Each commit is a single SQLite transaction
    - Lookups never fail on absent keys
"""

from .dataset_store import CommitOutcome, DatasetStore, InvalidRequestError, path_key

__all__ = [
    "DatasetStore",
    "CommitOutcome",
    "InvalidRequestError",
    "path_key",
]
