"""
Key types for the Datastore SDK.

This module provides the identifiers of the entity model:
- PathElement: One (kind, id-or-name) segment of an ancestor path
- PartialKey: Dataset + namespace + ancestor path + kind, no identity
- Key: PartialKey plus exactly one of a numeric id or a string name
- KeyBuilder: Fluent, mutable builder producing PartialKey or Key

Keys are immutable value objects with structural equality. Ancestors are
copied into a key's own path, never referenced.

Invariants:
    - A Key has exactly one of id or name
    - to_key() keeps every field of the source except identity
    - A PartialKey never compares equal to a Key

Example:
    >>> parent = KeyBuilder("dataset1", "Task").build("root")
    >>> child = KeyBuilder.from_parent(parent, "Note").build(1)
    >>> child.ancestors
    (PathElement(kind='Task', id=None, name='root'),)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from .client import DatastoreService

INT64_MAX = 2**63 - 1

IdOrName = Union[int, str]


def _validate_kind(kind: object) -> None:
    if not isinstance(kind, str) or not kind:
        raise InvalidArgumentError(f"kind must be a non-empty string, got {kind!r}", field_name="kind")


def _validate_identity(id: object, name: object) -> None:
    if (id is None) == (name is None):
        raise InvalidArgumentError(
            f"exactly one of id or name must be set (id={id!r}, name={name!r})",
            field_name="id",
        )
    if id is not None:
        if isinstance(id, bool) or not isinstance(id, int) or not 0 < id <= INT64_MAX:
            raise InvalidArgumentError(f"id must be a positive 64-bit integer, got {id!r}", field_name="id")
    elif not isinstance(name, str) or not name:
        raise InvalidArgumentError(f"name must be a non-empty string, got {name!r}", field_name="name")


def _split_identity(id_or_name: IdOrName) -> tuple[int | None, str | None]:
    if isinstance(id_or_name, str):
        return None, id_or_name
    if isinstance(id_or_name, int) and not isinstance(id_or_name, bool):
        return id_or_name, None
    raise InvalidArgumentError(
        f"identity must be an int id or a str name, got {type(id_or_name).__name__}",
        field_name="id",
    )


@dataclass(frozen=True)
class PathElement:
    """One segment of a key path.

    Attributes:
        kind: Entity kind of this segment
        id: Numeric identity (exclusive with name)
        name: String identity (exclusive with id)
    """

    kind: str
    id: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        _validate_kind(self.kind)
        _validate_identity(self.id, self.name)

    @classmethod
    def of(cls, kind: str, id_or_name: IdOrName) -> PathElement:
        """Create a segment from an int id or a str name."""
        id, name = _split_identity(id_or_name)
        return cls(kind, id=id, name=name)

    @property
    def id_or_name(self) -> IdOrName:
        return self.id if self.id is not None else self.name  # type: ignore[return-value]

    def __str__(self) -> str:
        if self.id is not None:
            return f"{self.kind}:{self.id}"
        return f'{self.kind}:"{self.name}"'


@dataclass(frozen=True)
class PartialKey:
    """Key without identity: where a new entity would go.

    Attributes:
        dataset: Dataset the key belongs to
        kind: Entity kind
        namespace: Optional namespace within the dataset
        ancestors: Ancestor path, outermost first
    """

    dataset: str
    kind: str
    namespace: str | None = None
    ancestors: tuple[PathElement, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.dataset, str) or not self.dataset:
            raise InvalidArgumentError(
                f"dataset must be a non-empty string, got {self.dataset!r}", field_name="dataset"
            )
        _validate_kind(self.kind)
        if self.namespace is not None and not isinstance(self.namespace, str):
            raise InvalidArgumentError(
                f"namespace must be a string, got {self.namespace!r}", field_name="namespace"
            )
        if self.namespace == "":
            object.__setattr__(self, "namespace", None)
        ancestors = tuple(self.ancestors)
        for element in ancestors:
            if not isinstance(element, PathElement):
                raise InvalidArgumentError(
                    f"ancestors must be PathElement instances, got {type(element).__name__}",
                    field_name="ancestors",
                )
        object.__setattr__(self, "ancestors", ancestors)

    def is_complete(self) -> bool:
        return False

    def to_key(self, id_or_name: IdOrName) -> Key:
        """Derive a complete Key with this key's path and the given identity.

        Args:
            id_or_name: int id or str name

        Returns:
            New Key; the receiver is unchanged
        """
        id, name = _split_identity(id_or_name)
        return Key(
            dataset=self.dataset,
            kind=self.kind,
            namespace=self.namespace,
            ancestors=self.ancestors,
            id=id,
            name=name,
        )

    def partial_key(self) -> PartialKey:
        """Return the identity-less part of this key."""
        return PartialKey(
            dataset=self.dataset,
            kind=self.kind,
            namespace=self.namespace,
            ancestors=self.ancestors,
        )

    def builder(self) -> KeyBuilder:
        """Return a builder pre-populated from this key."""
        return KeyBuilder.from_key(self)

    def _prefix(self) -> str:
        head = f"{self.dataset}:{self.namespace}" if self.namespace else self.dataset
        return "/".join([head] + [str(a) for a in self.ancestors])

    def __str__(self) -> str:
        return f"{self._prefix()}/{self.kind}"


@dataclass(frozen=True)
class Key(PartialKey):
    """Complete key: a PartialKey plus exactly one of id or name.

    Attributes:
        id: Numeric identity
        name: String identity
    """

    id: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        _validate_identity(self.id, self.name)

    def is_complete(self) -> bool:
        return True

    def has_id(self) -> bool:
        return self.id is not None

    def has_name(self) -> bool:
        return self.name is not None

    @property
    def id_or_name(self) -> IdOrName:
        return self.id if self.id is not None else self.name  # type: ignore[return-value]

    @property
    def path_element(self) -> PathElement:
        """This key's own (kind, identity) segment."""
        return PathElement(self.kind, id=self.id, name=self.name)

    @property
    def path(self) -> tuple[PathElement, ...]:
        """Full path: ancestors followed by this key's own segment."""
        return self.ancestors + (self.path_element,)

    def parent(self) -> Key | None:
        """Key of the innermost ancestor, or None for a root key."""
        if not self.ancestors:
            return None
        last = self.ancestors[-1]
        return Key(
            dataset=self.dataset,
            kind=last.kind,
            namespace=self.namespace,
            ancestors=self.ancestors[:-1],
            id=last.id,
            name=last.name,
        )

    def __str__(self) -> str:
        return f"{self._prefix()}/{self.path_element}"


class KeyBuilder:
    """Fluent builder for PartialKey and Key.

    The builder is mutable; every build() returns a new immutable key.
    Setting id clears name and vice versa.

    Example:
        >>> builder = KeyBuilder("dataset1", "Task").add_ancestor("Project", 7)
        >>> builder.build()          # PartialKey
        >>> builder.build("t1")      # Key with name "t1"
    """

    def __init__(
        self,
        dataset: str,
        kind: str,
        *,
        namespace: str | None = None,
        ancestors: tuple[PathElement, ...] = (),
        service: DatastoreService | None = None,
    ) -> None:
        self._dataset = dataset
        self._kind = kind
        self._namespace = namespace
        self._ancestors: list[PathElement] = list(ancestors)
        self._id: int | None = None
        self._name: str | None = None
        self._service = service

    @classmethod
    def from_key(cls, key: PartialKey) -> KeyBuilder:
        """Create a builder holding every field of an existing key."""
        builder = cls(key.dataset, key.kind, namespace=key.namespace, ancestors=key.ancestors)
        if isinstance(key, Key):
            builder._id = key.id
            builder._name = key.name
        return builder

    @classmethod
    def from_parent(
        cls,
        parent: Key,
        kind: str,
        id_or_name: IdOrName | None = None,
    ) -> KeyBuilder:
        """Create a builder for a child of a complete key.

        The parent's path (ancestors plus its own segment) is copied into
        the child's ancestors.
        """
        if not isinstance(parent, Key):
            raise InvalidArgumentError("parent must be a complete Key", field_name="parent")
        builder = cls(parent.dataset, kind, namespace=parent.namespace, ancestors=parent.path)
        if id_or_name is not None:
            builder._id, builder._name = _split_identity(id_or_name)
        return builder

    def namespace(self, namespace: str | None) -> KeyBuilder:
        self._namespace = namespace
        return self

    def kind(self, kind: str) -> KeyBuilder:
        self._kind = kind
        return self

    def add_ancestor(self, kind: str, id_or_name: IdOrName) -> KeyBuilder:
        """Append one segment to the ancestor path."""
        self._ancestors.append(PathElement.of(kind, id_or_name))
        return self

    def add_ancestors(self, *elements: PathElement) -> KeyBuilder:
        self._ancestors.extend(elements)
        return self

    def clear_ancestors(self) -> KeyBuilder:
        self._ancestors.clear()
        return self

    def id(self, id: int) -> KeyBuilder:
        self._id = id
        self._name = None
        return self

    def name(self, name: str) -> KeyBuilder:
        self._name = name
        self._id = None
        return self

    def build(self, id_or_name: IdOrName | None = None) -> PartialKey | Key:
        """Build a key.

        Args:
            id_or_name: Optional identity overriding the builder's own

        Returns:
            Key when an identity is known, PartialKey otherwise
        """
        if id_or_name is not None:
            id, name = _split_identity(id_or_name)
        else:
            id, name = self._id, self._name

        partial = PartialKey(
            dataset=self._dataset,
            kind=self._kind,
            namespace=self._namespace,
            ancestors=tuple(self._ancestors),
        )
        if id is None and name is None:
            return partial
        return Key(
            dataset=partial.dataset,
            kind=partial.kind,
            namespace=partial.namespace,
            ancestors=partial.ancestors,
            id=id,
            name=name,
        )

    async def allocate_id_and_build(self) -> Key:
        """Build the partial key and allocate a fresh id for it.

        Raises:
            InvalidArgumentError: If the builder is not bound to a service
        """
        if self._service is None:
            raise InvalidArgumentError(
                "allocate_id_and_build requires a builder from DatastoreService.new_key_builder()"
            )
        partial = self.build()
        return await self._service.allocate_id(partial.partial_key())
