"""
Per-dataset SQLite store for the datastore server.

This module manages the SQLite database of each dataset, storing:
- Entities, keyed by their canonical key path
- The id sequence used for allocation

Entities are stored as the encoded JSON received from clients. The store
interprets keys and checks property documents for shape; payloads are
opaque to it.

Invariants:
    - One SQLite file per dataset id, distinct ids never share a file
    - Written entities are complete and every property carries a known type tag
    - Every commit runs in a single BEGIN IMMEDIATE transaction
    - Conflict and existence checks run before any write; a failed check
      rolls the whole batch back
    - Allocated ids are never handed out twice and never collide with a
      stored entity on the same path

How to change safely:
    - Schema migrations must be backward compatible
    - Keep path_key() stable; it is the primary key of stored entities
    - Use transactions for all write operations

Table schema:
    entities:
        - path_key TEXT PRIMARY KEY (canonical JSON of namespace + path)
        - namespace TEXT
        - kind TEXT
        - entity_json TEXT
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)

    id_sequence:
        - name TEXT PRIMARY KEY
        - next_id INTEGER
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

INT64_MAX = 2**63 - 1

# Type tags understood by SDK clients
VALUE_TYPE_TAGS = frozenset(
    {"null", "string", "boolean", "integer", "double", "timestamp", "blob", "key", "entity", "list"}
)


class InvalidRequestError(ValueError):
    """Request is structurally invalid."""

    pass


@dataclass
class CommitOutcome:
    """Result of a commit.

    Attributes:
        status: OK, ALREADY_EXISTS or NOT_FOUND
        keys: Offending encoded keys when status is not OK
    """

    status: str
    keys: list[dict[str, Any]] = field(default_factory=list)


def _check_key(dataset: str, key: Any, complete: bool) -> dict[str, Any]:
    if not isinstance(key, dict):
        raise InvalidRequestError(f"key must be an object, got {type(key).__name__}")
    if key.get("dataset") != dataset:
        raise InvalidRequestError(f"key dataset {key.get('dataset')!r} does not match {dataset!r}")
    path = key.get("path")
    if not isinstance(path, list) or not path:
        raise InvalidRequestError("key path must be a non-empty list")
    for element in path[:-1]:
        if not isinstance(element, dict) or ("id" in element) == ("name" in element):
            raise InvalidRequestError(f"ancestor {element!r} must have exactly one of id or name")
    last = path[-1]
    if not isinstance(last, dict) or not last.get("kind"):
        raise InvalidRequestError(f"path element {last!r} has no kind")
    if complete and ("id" in last) == ("name" in last):
        raise InvalidRequestError(f"key {key!r} must have exactly one of id or name")
    return key


def _check_value(name: str, value: Any) -> None:
    if not isinstance(value, dict) or value.get("type") not in VALUE_TYPE_TAGS:
        raise InvalidRequestError(f"property {name!r} has no valid type tag: {value!r}")
    if not isinstance(value.get("indexed", True), bool):
        raise InvalidRequestError(f"property {name!r} indexed flag must be a boolean")
    if value["type"] == "list":
        items = value.get("value")
        if not isinstance(items, list):
            raise InvalidRequestError(f"property {name!r} list value must be an array")
        for item in items:
            if isinstance(item, dict) and item.get("type") == "list":
                raise InvalidRequestError(f"property {name!r} nests a list in a list")
            _check_value(name, item)
    elif value["type"] == "entity":
        nested = value.get("value")
        if not isinstance(nested, dict) or not isinstance(nested.get("key"), dict):
            raise InvalidRequestError(f"property {name!r} entity value has no key")
        _check_properties(nested)


def _check_properties(entity: dict[str, Any]) -> None:
    properties = entity.get("properties", {})
    if not isinstance(properties, dict):
        raise InvalidRequestError("entity properties must be an object")
    for name, value in properties.items():
        if not name:
            raise InvalidRequestError("property names must be non-empty")
        _check_value(name, value)


def _check_entity(dataset: str, entity: Any) -> None:
    if not isinstance(entity, dict):
        raise InvalidRequestError(f"entity must be an object, got {type(entity).__name__}")
    if entity.get("complete", True) is not True:
        raise InvalidRequestError("only complete entities can be written")
    _check_key(dataset, entity.get("key"), complete=True)
    _check_properties(entity)


def path_key(key: dict[str, Any]) -> str:
    """Canonical string identifying a complete key within a dataset."""
    return json.dumps(
        {"namespace": key.get("namespace") or "", "path": key["path"]},
        sort_keys=True,
        separators=(",", ":"),
    )


class DatasetStore:
    """Per-dataset SQLite store for entities.

    This class manages SQLite databases for datasets, providing:
    - Positional lookup of entities
    - Atomic commit of insert/update/upsert/delete batches
    - Id allocation

    Thread safety:
        Each database connection is created per-operation.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = DatasetStore("/var/lib/datastore")
        >>> outcome = await store.commit("dataset1", upserts=[entity_json])
        >>> results = await store.lookup("dataset1", [key_json])
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the dataset store.

        Args:
            data_dir: Directory for SQLite database files
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._initialized: set[str] = set()
        self._lock = asyncio.Lock()

    def _get_db_path(self, dataset: str) -> Path:
        """Get database file path for a dataset."""
        # Sanitize dataset to prevent path traversal; the digest keeps
        # datasets that sanitize to the same text in separate files
        safe_id = "".join(c for c in dataset if c.isalnum() or c in "-_")
        digest = hashlib.sha256(dataset.encode("utf-8")).hexdigest()[:16]
        return self.data_dir / f"dataset_{safe_id}_{digest}.db"

    @contextmanager
    def _get_connection(self, dataset: str) -> Iterator[sqlite3.Connection]:
        """Get a database connection for a dataset, creating it on first use.

        Yields:
            SQLite connection
        """
        db_path = self._get_db_path(dataset)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            if dataset not in self._initialized:
                self._create_schema(conn)
                self._initialized.add(dataset)
                logger.info(f"Initialized dataset database: {dataset}")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            -- Schema version tracking
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            -- Entities table
            CREATE TABLE IF NOT EXISTS entities (
                path_key TEXT PRIMARY KEY,
                namespace TEXT NOT NULL DEFAULT '',
                kind TEXT NOT NULL,
                entity_json TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_entities_kind ON entities(namespace, kind);

            -- Id allocation sequence
            CREATE TABLE IF NOT EXISTS id_sequence (
                name TEXT PRIMARY KEY,
                next_id INTEGER NOT NULL
            );

            -- Record schema version
            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    def _exists(self, conn: sqlite3.Connection, key: dict[str, Any]) -> bool:
        cursor = conn.execute("SELECT 1 FROM entities WHERE path_key = ?", (path_key(key),))
        return cursor.fetchone() is not None

    async def lookup(
        self,
        dataset: str,
        keys: list[dict[str, Any]],
    ) -> list[dict[str, Any] | None]:
        """Look up entities by key.

        Args:
            dataset: Dataset identifier
            keys: Encoded complete keys

        Returns:
            Encoded entity or None for each key, in request order
        """
        for key in keys:
            _check_key(dataset, key, complete=True)

        with self._get_connection(dataset) as conn:
            results: list[dict[str, Any] | None] = []
            for key in keys:
                cursor = conn.execute(
                    "SELECT entity_json FROM entities WHERE path_key = ?",
                    (path_key(key),),
                )
                row = cursor.fetchone()
                results.append(json.loads(row["entity_json"]) if row else None)
            return results

    async def commit(
        self,
        dataset: str,
        inserts: list[dict[str, Any]] | None = None,
        updates: list[dict[str, Any]] | None = None,
        upserts: list[dict[str, Any]] | None = None,
        deletes: list[dict[str, Any]] | None = None,
    ) -> CommitOutcome:
        """Apply a batch of mutations atomically.

        Inserts must target absent keys and updates present keys; if either
        check fails nothing is written.

        Args:
            dataset: Dataset identifier
            inserts: Encoded entities to insert
            updates: Encoded entities replacing stored ones
            upserts: Encoded entities written unconditionally
            deletes: Encoded keys to remove

        Returns:
            CommitOutcome with status and offending keys
        """
        inserts = inserts or []
        updates = updates or []
        upserts = upserts or []
        deletes = deletes or []

        for entity in (*inserts, *updates, *upserts):
            _check_entity(dataset, entity)
        for key in deletes:
            _check_key(dataset, key, complete=True)
        touched = [path_key(e["key"]) for e in (*inserts, *updates, *upserts)]
        touched += [path_key(k) for k in deletes]
        if len(set(touched)) != len(touched):
            raise InvalidRequestError("multiple mutations in one commit affect the same key")

        now = int(time.time() * 1000)

        async with self._lock:
            with self._get_connection(dataset) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conflicts = [e["key"] for e in inserts if self._exists(conn, e["key"])]
                    if conflicts:
                        conn.execute("ROLLBACK")
                        return CommitOutcome(status="ALREADY_EXISTS", keys=conflicts)

                    missing = [e["key"] for e in updates if not self._exists(conn, e["key"])]
                    if missing:
                        conn.execute("ROLLBACK")
                        return CommitOutcome(status="NOT_FOUND", keys=missing)

                    for entity in inserts:
                        conn.execute(
                            """
                            INSERT INTO entities (path_key, namespace, kind, entity_json,
                                                  created_at, updated_at)
                            VALUES (?, ?, ?, ?, ?, ?)
                            """,
                            self._row(entity, now),
                        )

                    for entity in updates:
                        conn.execute(
                            """
                            UPDATE entities SET entity_json = ?, updated_at = ?
                            WHERE path_key = ?
                            """,
                            (json.dumps(entity), now, path_key(entity["key"])),
                        )

                    for entity in upserts:
                        conn.execute(
                            """
                            INSERT INTO entities (path_key, namespace, kind, entity_json,
                                                  created_at, updated_at)
                            VALUES (?, ?, ?, ?, ?, ?)
                            ON CONFLICT(path_key) DO UPDATE SET
                                entity_json = excluded.entity_json,
                                updated_at = excluded.updated_at
                            """,
                            self._row(entity, now),
                        )

                    for key in deletes:
                        conn.execute("DELETE FROM entities WHERE path_key = ?", (path_key(key),))

                    conn.execute("COMMIT")

                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Committed batch",
            extra={
                "dataset": dataset,
                "inserts": len(inserts),
                "updates": len(updates),
                "upserts": len(upserts),
                "deletes": len(deletes),
            },
        )
        return CommitOutcome(status="OK")

    def _row(self, entity: dict[str, Any], now: int) -> tuple[Any, ...]:
        key = entity["key"]
        return (
            path_key(key),
            key.get("namespace") or "",
            key["path"][-1]["kind"],
            json.dumps(entity),
            now,
            now,
        )

    async def allocate_ids(
        self,
        dataset: str,
        keys: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Allocate one fresh id per key.

        Ids come from a per-dataset sequence. Ids occupied on the requested
        path, and the id of a complete input key, are skipped.

        Args:
            dataset: Dataset identifier
            keys: Encoded keys, partial or complete

        Returns:
            Encoded complete keys in request order
        """
        for key in keys:
            _check_key(dataset, key, complete=False)

        allocated: list[dict[str, Any]] = []

        async with self._lock:
            with self._get_connection(dataset) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT next_id FROM id_sequence WHERE name = 'default'"
                    ).fetchone()
                    next_id = row["next_id"] if row else 1

                    for key in keys:
                        last = key["path"][-1]
                        excluded = last.get("id")
                        while True:
                            if next_id > INT64_MAX:
                                raise RuntimeError(f"id space exhausted for dataset {dataset}")
                            candidate = next_id
                            next_id += 1
                            new_key = {
                                "dataset": dataset,
                                "namespace": key.get("namespace"),
                                "path": key["path"][:-1] + [{"kind": last["kind"], "id": candidate}],
                            }
                            if candidate != excluded and not self._exists(conn, new_key):
                                allocated.append(new_key)
                                break

                    conn.execute(
                        """
                        INSERT INTO id_sequence (name, next_id) VALUES ('default', ?)
                        ON CONFLICT(name) DO UPDATE SET next_id = excluded.next_id
                        """,
                        (next_id,),
                    )
                    conn.execute("COMMIT")

                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Allocated ids",
            extra={"dataset": dataset, "count": len(allocated)},
        )
        return allocated

    async def count(self, dataset: str) -> int:
        """Number of stored entities in a dataset."""
        with self._get_connection(dataset) as conn:
            return conn.execute("SELECT COUNT(*) FROM entities").fetchone()[0]
