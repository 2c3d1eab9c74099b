"""
Unit tests for entities and entity builders.

Tests cover:
- Read-only property maps
- Copy-on-write builders
- Entity / PartialEntity key requirements
"""

import pytest

from sdk.datastore_sdk.entity import (
    Entity,
    EntityBuilder,
    PartialEntity,
    PartialEntityBuilder,
)
from sdk.datastore_sdk.errors import InvalidArgumentError
from sdk.datastore_sdk.key import KeyBuilder, PartialKey
from sdk.datastore_sdk.value import BooleanValue, NullValue, StringValue

DATASET = "dataset1"
PARTIAL_KEY1 = PartialKey(DATASET, "kind1")
KEY1 = PARTIAL_KEY1.to_key("name")
KEY2 = KeyBuilder.from_parent(KEY1, "kind2", 1).build()


@pytest.fixture
def entity1():
    """Entity with one indexed and one unindexed property."""
    return (
        EntityBuilder(KEY1)
        .set_property("str", StringValue("str"))
        .set_property("bool", BooleanValue(False, indexed=False))
        .build()
    )


class TestEntity:
    """Tests for Entity and PartialEntity."""

    def test_properties_are_read_only(self, entity1):
        with pytest.raises(TypeError):
            entity1.properties["str"] = StringValue("x")

    def test_get_property(self, entity1):
        assert entity1.get_property("str") == StringValue("str")
        assert entity1.has_property("bool")
        assert not entity1.has_property("missing")
        with pytest.raises(KeyError):
            entity1.get_property("missing")

    def test_property_names(self, entity1):
        assert entity1.property_names() == frozenset({"str", "bool"})
        assert len(entity1) == 2
        assert len(Entity(KEY1)) == 0

    def test_equality_ignores_insertion_order(self):
        a = Entity(KEY1, {"a": StringValue("1"), "b": StringValue("2")})
        b = Entity(KEY1, {"b": StringValue("2"), "a": StringValue("1")})
        assert a == b
        assert hash(a) == hash(b)

    def test_entity_requires_complete_key(self):
        with pytest.raises(InvalidArgumentError, match="complete Key"):
            Entity(PARTIAL_KEY1)

    def test_partial_entity_accepts_partial_key(self):
        entity = PartialEntity(PARTIAL_KEY1, {"a": StringValue("1")})
        assert entity.key == PARTIAL_KEY1

    def test_partial_entity_never_equals_entity(self):
        assert PartialEntity(KEY1) != Entity(KEY1)

    def test_none_property_rejected(self):
        """None is not a value; NullValue is."""
        with pytest.raises(InvalidArgumentError, match="NullValue"):
            Entity(KEY1, {"a": None})

    def test_plain_object_property_rejected(self):
        with pytest.raises(InvalidArgumentError):
            Entity(KEY1, {"a": "str"})

    def test_source_dict_is_copied(self):
        """Mutating the dict passed in does not change the entity."""
        props = {"a": StringValue("1")}
        entity = Entity(KEY1, props)
        props["b"] = StringValue("2")
        assert not entity.has_property("b")


class TestEntityBuilder:
    """Tests for EntityBuilder and PartialEntityBuilder."""

    def test_builder_without_edits_equals_base(self, entity1):
        assert EntityBuilder(KEY1, entity1).build() == entity1
        assert entity1.builder().build() == entity1

    def test_derived_entity(self, entity1):
        """Derive a child entity: drop "str", add "null"."""
        entity2 = (
            EntityBuilder(KEY2, entity1)
            .remove_property("str")
            .set_property("null", NullValue())
            .build()
        )

        assert entity2.key == KEY2
        assert entity2.property_names() == frozenset({"bool", "null"})
        assert entity2.get_property("bool") == BooleanValue(False, indexed=False)
        assert entity2.get_property("null") == NullValue()

    def test_base_is_not_mutated(self, entity1):
        entity1.builder().clear_properties().set_property("x", StringValue("y")).build()
        assert entity1.property_names() == frozenset({"str", "bool"})

    def test_builders_from_same_base_are_independent(self, entity1):
        first = entity1.builder().remove_property("str")
        second = entity1.builder()
        assert first.build() != second.build()
        assert second.build() == entity1

    def test_build_twice_gives_independent_entities(self):
        builder = EntityBuilder(KEY1).set_property("a", StringValue("1"))
        first = builder.build()
        builder.set_property("b", StringValue("2"))
        assert not first.has_property("b")

    def test_remove_absent_property_is_noop(self, entity1):
        assert entity1.builder().remove_property("missing").build() == entity1

    def test_set_wraps_plain_objects(self):
        entity = EntityBuilder(KEY1).set("title", "t").set("done", False, indexed=False).build()
        assert entity.get_property("title") == StringValue("t")
        assert entity.get_property("done") == BooleanValue(False, indexed=False)

    def test_set_property_rejects_none(self):
        with pytest.raises(InvalidArgumentError):
            EntityBuilder(KEY1).set_property("a", None)

    def test_key_replaces_key(self, entity1):
        moved = entity1.builder().key(KEY2).build()
        assert moved.key == KEY2
        assert moved.properties == entity1.properties

    def test_entity_builder_rejects_partial_key_at_build(self):
        with pytest.raises(InvalidArgumentError):
            EntityBuilder(PARTIAL_KEY1).build()

    def test_partial_entity_builder(self):
        partial = PartialEntityBuilder(PARTIAL_KEY1).set("a", 1).build()
        assert type(partial) is PartialEntity
        assert type(partial.builder()) is PartialEntityBuilder
