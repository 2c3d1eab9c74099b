"""
Entity types for the Datastore SDK.

This module provides the stored records of the entity model:
- PartialEntity: Property map attached to a PartialKey (no identity yet)
- Entity: Property map attached to a complete Key
- PartialEntityBuilder / EntityBuilder: Copy-on-write builders

Invariants:
    - Entities are frozen; properties are exposed read-only
    - A property is either present with a Value or absent; None is never stored
    - Building from a base copies the base map, the base is never mutated
    - Equality ignores property insertion order

Example:
    >>> entity = (
    ...     EntityBuilder(key)
    ...     .set_property("title", StringValue("My Task"))
    ...     .set_property("done", BooleanValue(False, indexed=False))
    ...     .build()
    ... )
    >>> edited = entity.builder().remove_property("done").build()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .errors import InvalidArgumentError
from .key import Key, PartialKey
from .value import Value, value_of


def _check_property(name: object, value: object) -> None:
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError(
            f"property name must be a non-empty string, got {name!r}", field_name="name"
        )
    if value is None:
        raise InvalidArgumentError(
            f"property '{name}' is None; use NullValue() to store a null", field_name=name
        )
    if not isinstance(value, Value):
        raise InvalidArgumentError(
            f"property '{name}' must be a Value, got {type(value).__name__}", field_name=name
        )


@dataclass(frozen=True)
class PartialEntity:
    """Property map attached to a key that may lack identity.

    Attributes:
        key: PartialKey (or complete Key) of the entity
        properties: Read-only mapping of property name to Value
    """

    key: PartialKey
    properties: Mapping[str, Value] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not isinstance(self.key, PartialKey):
            raise InvalidArgumentError(
                f"{type(self).__name__} key must be a PartialKey, got {type(self.key).__name__}",
                field_name="key",
            )
        properties = dict(self.properties)
        for name, value in properties.items():
            _check_property(name, value)
        object.__setattr__(self, "properties", MappingProxyType(properties))

    def get_property(self, name: str) -> Value:
        """Get a property value.

        Raises:
            KeyError: If the property is not set
        """
        return self.properties[name]

    def has_property(self, name: str) -> bool:
        return name in self.properties

    def property_names(self) -> frozenset[str]:
        return frozenset(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def builder(self) -> PartialEntityBuilder:
        """Return a builder that starts from this entity."""
        return PartialEntityBuilder(self.key, self)


@dataclass(frozen=True)
class Entity(PartialEntity):
    """Property map attached to a complete Key."""

    key: Key

    def __post_init__(self) -> None:
        if not isinstance(self.key, Key):
            raise InvalidArgumentError(
                f"Entity key must be a complete Key, got {type(self.key).__name__}",
                field_name="key",
            )
        super().__post_init__()

    def builder(self) -> EntityBuilder:
        return EntityBuilder(self.key, self)


class PartialEntityBuilder:
    """Builder for PartialEntity.

    When given a base entity, its properties are copied in and edits apply
    to the copy only.
    """

    def __init__(self, key: PartialKey, base: PartialEntity | None = None) -> None:
        self._key = key
        self._properties: dict[str, Value] = dict(base.properties) if base is not None else {}

    def key(self, key: PartialKey) -> PartialEntityBuilder:
        self._key = key
        return self

    def set_property(self, name: str, value: Value) -> PartialEntityBuilder:
        """Insert or replace a property."""
        _check_property(name, value)
        self._properties[name] = value
        return self

    def set(self, name: str, obj: Any, *, indexed: bool = True) -> PartialEntityBuilder:
        """Insert or replace a property from a plain Python object."""
        return self.set_property(name, value_of(obj, indexed=indexed))

    def remove_property(self, name: str) -> PartialEntityBuilder:
        """Remove a property; absent names are ignored."""
        self._properties.pop(name, None)
        return self

    def clear_properties(self) -> PartialEntityBuilder:
        self._properties.clear()
        return self

    def build(self) -> PartialEntity:
        return PartialEntity(self._key, dict(self._properties))


class EntityBuilder(PartialEntityBuilder):
    """Builder for Entity (requires a complete Key at build time)."""

    def __init__(self, key: Key, base: PartialEntity | None = None) -> None:
        super().__init__(key, base)

    def build(self) -> Entity:
        return Entity(self._key, dict(self._properties))  # type: ignore[arg-type]
