"""
Datastore Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (SQLite, in-process and gRPC servers)
"""
