"""
Connection options for the Datastore SDK.

Options are an immutable value handed to DatastoreService. The service
keeps the exact instance it was given (see DatastoreService.options), so
callers can compare by identity or derive modified copies.

Environment variables read by from_env():
    DATASTORE_DATASET          dataset id (required)
    DATASTORE_HOST             host:port or URL (default localhost:8080)
    DATASTORE_NAMESPACE        default namespace for new keys
    DATASTORE_SECURE           "true" to use TLS
    DATASTORE_TIMEOUT_SECONDS  per-call deadline (default 30)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import urlparse


@dataclass(frozen=True)
class DatastoreServiceOptions:
    """Datastore client configuration.

    Attributes:
        dataset: Dataset all keys of this client belong to
        host: Server address, "host:port" or a URL such as "http://localhost:8080"
        namespace: Default namespace for keys created by new_key_builder()
        secure: Whether to use TLS
        timeout_seconds: Deadline applied to each remote call
    """

    dataset: str
    host: str = "localhost:8080"
    namespace: str | None = None
    secure: bool = False
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.dataset:
            raise ValueError("dataset cannot be empty")
        if not self.host:
            raise ValueError("host cannot be empty")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")

    @classmethod
    def from_env(cls) -> DatastoreServiceOptions:
        """Load options from environment variables.

        Raises:
            ValueError: If DATASTORE_DATASET is not set
        """
        dataset = os.getenv("DATASTORE_DATASET", "")
        if not dataset:
            raise ValueError("DATASTORE_DATASET is required")
        return cls(
            dataset=dataset,
            host=os.getenv("DATASTORE_HOST", "localhost:8080"),
            namespace=os.getenv("DATASTORE_NAMESPACE") or None,
            secure=os.getenv("DATASTORE_SECURE", "false").lower() == "true",
            timeout_seconds=float(os.getenv("DATASTORE_TIMEOUT_SECONDS", "30")),
        )

    @property
    def address(self) -> str:
        """host:port target with any URL scheme stripped."""
        if "://" in self.host:
            return urlparse(self.host).netloc
        return self.host

    def with_overrides(self, **changes: Any) -> DatastoreServiceOptions:
        """Return a copy with some fields replaced."""
        return replace(self, **changes)
