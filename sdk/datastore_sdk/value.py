"""
Property value types for the Datastore SDK.

Property values form a closed set of immutable variants. Each variant
carries its payload in ``value`` and an ``indexed`` flag (default True).

Supported variants:
- NullValue, StringValue, BooleanValue, IntegerValue, DoubleValue
- TimestampValue, BlobValue, KeyValue
- PartialEntityValue (nested entity, owned by value)
- ListValue (tuple of non-list values)

Invariants:
    - Values are frozen; use builder() or ValueBuilder to derive variants
    - Equality is variant + payload + indexed flag
    - Payload types are checked at construction

Example:
    >>> BooleanValue(False, indexed=False)
    >>> ValueBuilder(StringValue, "str").indexed(False).build()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from .errors import InvalidArgumentError
from .key import Key

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class Value:
    """Base of all property value variants."""

    type_name: ClassVar[str] = ""

    value: Any
    indexed: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.indexed, bool):
            raise InvalidArgumentError(
                f"indexed must be a bool, got {self.indexed!r}", field_name="indexed"
            )
        self._check()

    def _check(self) -> None:
        raise NotImplementedError

    def _reject(self, expected: str) -> None:
        raise InvalidArgumentError(
            f"{type(self).__name__} expects {expected}, got {type(self.value).__name__}",
            field_name="value",
        )

    def builder(self) -> ValueBuilder[Any]:
        """Return a builder pre-populated from this value."""
        return ValueBuilder(type(self), self.value, indexed=self.indexed)


@dataclass(frozen=True)
class NullValue(Value):
    type_name: ClassVar[str] = "null"

    value: None = None

    def _check(self) -> None:
        if self.value is not None:
            self._reject("None")


@dataclass(frozen=True)
class StringValue(Value):
    type_name: ClassVar[str] = "string"

    value: str

    def _check(self) -> None:
        if not isinstance(self.value, str):
            self._reject("str")


@dataclass(frozen=True)
class BooleanValue(Value):
    type_name: ClassVar[str] = "boolean"

    value: bool

    def _check(self) -> None:
        if not isinstance(self.value, bool):
            self._reject("bool")


@dataclass(frozen=True)
class IntegerValue(Value):
    type_name: ClassVar[str] = "integer"

    value: int

    def _check(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            self._reject("int")
        if not INT64_MIN <= self.value <= INT64_MAX:
            raise InvalidArgumentError(
                f"IntegerValue out of 64-bit range: {self.value}", field_name="value"
            )


@dataclass(frozen=True)
class DoubleValue(Value):
    type_name: ClassVar[str] = "double"

    value: float

    def _check(self) -> None:
        if not isinstance(self.value, float):
            self._reject("float")


@dataclass(frozen=True)
class TimestampValue(Value):
    type_name: ClassVar[str] = "timestamp"

    value: datetime

    def _check(self) -> None:
        if not isinstance(self.value, datetime):
            self._reject("datetime")
        if self.value.tzinfo is None:
            raise InvalidArgumentError(
                "TimestampValue requires a timezone-aware datetime", field_name="value"
            )


@dataclass(frozen=True)
class BlobValue(Value):
    type_name: ClassVar[str] = "blob"

    value: bytes

    def _check(self) -> None:
        if not isinstance(self.value, bytes):
            self._reject("bytes")


@dataclass(frozen=True)
class KeyValue(Value):
    type_name: ClassVar[str] = "key"

    value: Key

    def _check(self) -> None:
        if not isinstance(self.value, Key):
            self._reject("Key")


@dataclass(frozen=True)
class PartialEntityValue(Value):
    """Nested entity value. The embedded entity is held by value."""

    type_name: ClassVar[str] = "entity"

    value: Any

    def _check(self) -> None:
        from .entity import PartialEntity

        if not isinstance(self.value, PartialEntity):
            self._reject("PartialEntity")


@dataclass(frozen=True)
class ListValue(Value):
    type_name: ClassVar[str] = "list"

    value: tuple[Value, ...] = ()

    def _check(self) -> None:
        if not isinstance(self.value, (list, tuple)):
            self._reject("a sequence of Value")
        items = tuple(self.value)
        for item in items:
            if not isinstance(item, Value):
                raise InvalidArgumentError(
                    f"ListValue items must be Value instances, got {type(item).__name__}",
                    field_name="value",
                )
            if isinstance(item, ListValue):
                raise InvalidArgumentError("ListValue cannot directly contain a ListValue", field_name="value")
        object.__setattr__(self, "value", items)


VALUE_TYPES: dict[str, type[Value]] = {
    cls.type_name: cls
    for cls in (
        NullValue,
        StringValue,
        BooleanValue,
        IntegerValue,
        DoubleValue,
        TimestampValue,
        BlobValue,
        KeyValue,
        PartialEntityValue,
        ListValue,
    )
}

V = TypeVar("V", bound=Value)


class ValueBuilder(Generic[V]):
    """Builder for a single value variant.

    Example:
        >>> ValueBuilder(BooleanValue, False).indexed(False).build()
        BooleanValue(value=False, indexed=False)
    """

    def __init__(self, value_type: type[V], value: Any = None, *, indexed: bool = True) -> None:
        self._type = value_type
        self._value = value
        self._indexed = indexed

    def set(self, value: Any) -> ValueBuilder[V]:
        self._value = value
        return self

    def indexed(self, indexed: bool) -> ValueBuilder[V]:
        self._indexed = indexed
        return self

    def build(self) -> V:
        return self._type(self._value, self._indexed)


def value_of(obj: Any, *, indexed: bool = True) -> Value:
    """Wrap a plain Python object in the matching value variant.

    Args:
        obj: Python object (None, bool, int, float, str, bytes, datetime,
            Key, PartialEntity, list/tuple of those) or a Value
        indexed: Indexed flag for the created value

    Returns:
        Value instance; Value inputs are returned unchanged

    Raises:
        InvalidArgumentError: If no variant matches
    """
    from .entity import PartialEntity

    if isinstance(obj, Value):
        return obj
    if obj is None:
        return NullValue(None, indexed)
    # bool before int: bool is an int subclass
    if isinstance(obj, bool):
        return BooleanValue(obj, indexed)
    if isinstance(obj, int):
        return IntegerValue(obj, indexed)
    if isinstance(obj, float):
        return DoubleValue(obj, indexed)
    if isinstance(obj, str):
        return StringValue(obj, indexed)
    if isinstance(obj, bytes):
        return BlobValue(obj, indexed)
    if isinstance(obj, datetime):
        return TimestampValue(obj, indexed)
    if isinstance(obj, Key):
        return KeyValue(obj, indexed)
    if isinstance(obj, PartialEntity):
        return PartialEntityValue(obj, indexed)
    if isinstance(obj, (list, tuple)):
        return ListValue(tuple(value_of(item, indexed=indexed) for item in obj), indexed)
    raise InvalidArgumentError(f"No property value type for {type(obj).__name__}")
