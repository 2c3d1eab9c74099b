"""
Unit tests for property values.

Tests cover:
- Payload validation per variant
- Equality including the indexed flag
- ValueBuilder and value_of
"""

from datetime import datetime, timezone

import pytest

from sdk.datastore_sdk.entity import PartialEntity
from sdk.datastore_sdk.errors import InvalidArgumentError
from sdk.datastore_sdk.key import Key, PartialKey
from sdk.datastore_sdk.value import (
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
    ValueBuilder,
    value_of,
)


class TestValueEquality:
    """Tests for value equality."""

    def test_equal_payload_and_flag(self):
        assert StringValue("str") == StringValue("str")
        assert hash(StringValue("str")) == hash(StringValue("str"))

    def test_indexed_flag_matters(self):
        """Values differing only in indexed are not equal."""
        assert BooleanValue(False) != BooleanValue(False, indexed=False)

    def test_variant_matters(self):
        assert NullValue() != StringValue("")
        assert IntegerValue(1) != DoubleValue(1.0)

    def test_indexed_defaults_true(self):
        assert StringValue("x").indexed is True
        assert NullValue().indexed is True

    def test_values_are_frozen(self):
        value = StringValue("x")
        with pytest.raises(AttributeError):
            value.value = "y"


class TestValueValidation:
    """Tests for payload checks."""

    def test_string_rejects_int(self):
        with pytest.raises(InvalidArgumentError, match="StringValue expects str"):
            StringValue(1)

    def test_integer_rejects_bool(self):
        with pytest.raises(InvalidArgumentError):
            IntegerValue(True)

    def test_integer_range(self):
        IntegerValue(2**63 - 1)
        with pytest.raises(InvalidArgumentError, match="64-bit"):
            IntegerValue(2**63)

    def test_boolean_rejects_int(self):
        with pytest.raises(InvalidArgumentError):
            BooleanValue(0)

    def test_null_rejects_payload(self):
        with pytest.raises(InvalidArgumentError):
            NullValue("x")

    def test_timestamp_requires_timezone(self):
        with pytest.raises(InvalidArgumentError, match="timezone"):
            TimestampValue(datetime(2024, 1, 1))
        TimestampValue(datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_key_value_requires_complete_key(self):
        with pytest.raises(InvalidArgumentError):
            KeyValue(PartialKey("d", "K"))
        KeyValue(Key("d", "K", id=1))

    def test_entity_value_requires_entity(self):
        with pytest.raises(InvalidArgumentError):
            PartialEntityValue({"a": 1})

    def test_list_converts_to_tuple(self):
        value = ListValue([StringValue("a"), IntegerValue(1)])
        assert value.value == (StringValue("a"), IntegerValue(1))

    def test_list_rejects_nested_list(self):
        with pytest.raises(InvalidArgumentError, match="ListValue"):
            ListValue([ListValue([])])

    def test_list_rejects_plain_objects(self):
        with pytest.raises(InvalidArgumentError):
            ListValue(["a"])

    def test_indexed_must_be_bool(self):
        with pytest.raises(InvalidArgumentError, match="indexed"):
            StringValue("x", indexed="no")


class TestValueBuilder:
    """Tests for ValueBuilder."""

    def test_builder_sets_indexed(self):
        value = ValueBuilder(BooleanValue, False).indexed(False).build()
        assert value == BooleanValue(False, indexed=False)

    def test_builder_from_value(self):
        """value.builder() starts from the value; the source is unchanged."""
        original = StringValue("a")
        derived = original.builder().set("b").indexed(False).build()
        assert derived == StringValue("b", indexed=False)
        assert original == StringValue("a")


class TestValueOf:
    """Tests for value_of."""

    def test_wraps_python_objects(self):
        key = Key("d", "K", id=1)
        entity = PartialEntity(PartialKey("d", "K"))
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert value_of(None) == NullValue()
        assert value_of(True) == BooleanValue(True)
        assert value_of(3) == IntegerValue(3)
        assert value_of(1.5) == DoubleValue(1.5)
        assert value_of("s") == StringValue("s")
        assert value_of(b"\x00") == BlobValue(b"\x00")
        assert value_of(when) == TimestampValue(when)
        assert value_of(key) == KeyValue(key)
        assert value_of(entity) == PartialEntityValue(entity)
        assert value_of([1, "a"]) == ListValue((IntegerValue(1), StringValue("a")))

    def test_indexed_flag(self):
        assert value_of("s", indexed=False) == StringValue("s", indexed=False)

    def test_value_passthrough(self):
        value = StringValue("s", indexed=False)
        assert value_of(value) is value

    def test_unknown_type(self):
        with pytest.raises(InvalidArgumentError, match="No property value type"):
            value_of(object())
