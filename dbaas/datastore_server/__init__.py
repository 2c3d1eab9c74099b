"""
Datastore Server - Reference backend for the Datastore SDK.

This package implements the remote side of the datastore contract:
- Entities addressed by hierarchical keys (namespace + ancestor path)
- Atomic commits of insert/update/upsert/delete batches
- Id allocation from a per-dataset sequence
- SQLite as storage, one database file per dataset

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│    gRPC     │────▶│  DatasetStore   │
    │   (SDK)     │     │   Server    │     │    (SQLite)     │
    └─────────────┘     └─────────────┘     └─────────────────┘

Invariants:
    - A commit is applied completely or not at all
    - Lookup results are positionally aligned with requested keys
    - Allocated ids are never reused

How to change safely:
    - Request/response documents may only gain optional fields
    - Keep the canonical key path encoding stable

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
