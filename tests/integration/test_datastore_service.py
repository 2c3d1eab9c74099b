"""
Integration tests for DatastoreService.

These tests run the client against the server's request handlers in
process (LocalDatastoreRpc -> DatastoreServicer -> DatasetStore on SQLite).

Tests cover:
- Options identity
- Id allocation
- get / get_many with absent slots
- add / update / put / delete semantics and batch atomicity
- Key builders bound to the service
- Batch writer
"""

import tempfile

import pytest

from dbaas.datastore_server.api import DatastoreServicer
from dbaas.datastore_server.storage import DatasetStore
from sdk.datastore_sdk import (
    AlreadyExistsError,
    BooleanValue,
    DatastoreError,
    DatastoreService,
    DatastoreServiceOptions,
    Entity,
    EntityBuilder,
    InvalidArgumentError,
    Key,
    KeyBuilder,
    LocalDatastoreRpc,
    NotFoundError,
    NullValue,
    PartialEntity,
    PartialEntityValue,
    PartialKey,
    StringValue,
    create_service,
)

DATASET = "dataset1"
KIND1 = "kind1"
KIND2 = "kind2"
PARTIAL_KEY1 = PartialKey(DATASET, KIND1)
PARTIAL_KEY2 = KeyBuilder(DATASET, KIND2).add_ancestor(KIND1, 10).build()
KEY1 = PARTIAL_KEY1.to_key("name")
KEY2 = KeyBuilder.from_parent(KEY1, KIND2, 1).build()
KEY3 = KEY2.builder().name("bla").build()

ENTITY1 = (
    EntityBuilder(KEY1)
    .set_property("str", StringValue("str"))
    .set_property("bool", BooleanValue(False, indexed=False))
    .build()
)
ENTITY2 = (
    EntityBuilder(KEY2, ENTITY1)
    .remove_property("str")
    .set_property("null", NullValue())
    .build()
)
ENTITY3 = (
    EntityBuilder(KEY3, ENTITY1)
    .remove_property("str")
    .set_property("null", NullValue())
    .set_property("partial1", PartialEntityValue(PartialEntity(PARTIAL_KEY2, {"a": StringValue("b")})))
    .build()
)


class TestDatastoreService:
    """Tests for DatastoreService over the in-process server."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def options(self):
        return DatastoreServiceOptions(dataset=DATASET, host="localhost:8080")

    @pytest.fixture
    def store(self, data_dir):
        return DatasetStore(data_dir, wal_mode=False)

    @pytest.fixture
    def datastore(self, options, store):
        """Service wired to the in-process server."""
        rpc = LocalDatastoreRpc(DatastoreServicer(store), DATASET)
        return DatastoreService(options, rpc=rpc)

    def test_options_identity(self, datastore, options):
        """get_options() returns the exact instance given at construction."""
        assert datastore.get_options() is options
        assert datastore.options is options

    def test_create_service(self, options, store):
        service = create_service(options, rpc=LocalDatastoreRpc(DatastoreServicer(store), DATASET))
        assert isinstance(service, DatastoreService)
        assert service.get_options() is options

    @pytest.mark.asyncio
    async def test_allocate_id(self, datastore):
        """Two allocations for the same path give distinct identities."""
        key = await datastore.allocate_id(PARTIAL_KEY1)
        assert key.partial_key() == PARTIAL_KEY1
        assert key.has_id()

        other = await datastore.allocate_id(PARTIAL_KEY1)
        assert other != key

    @pytest.mark.asyncio
    async def test_allocate_id_for_complete_key(self, datastore):
        """A complete key gets a new identity on the same path."""
        allocated = await datastore.allocate_id(KEY2)
        assert allocated.partial_key() == KEY2.partial_key()
        assert allocated != KEY2

    @pytest.mark.asyncio
    async def test_allocate_ids(self, datastore):
        """Results follow argument order."""
        key1, key2 = await datastore.allocate_ids(PARTIAL_KEY1, PARTIAL_KEY2)

        assert key1.partial_key() == PARTIAL_KEY1
        assert key2.partial_key() == PARTIAL_KEY2
        assert key2.ancestors == PARTIAL_KEY2.ancestors

    @pytest.mark.asyncio
    async def test_allocate_ids_empty(self, datastore):
        assert await datastore.allocate_ids() == []

    @pytest.mark.asyncio
    async def test_get_missing(self, datastore):
        """A never-stored key reads back as None."""
        assert await datastore.get(KEY1) is None

    @pytest.mark.asyncio
    async def test_get(self, datastore):
        await datastore.add(ENTITY1)

        entity = await datastore.get(KEY1)

        assert entity == ENTITY1
        assert entity.get_property("str") == StringValue("str")
        assert entity.get_property("bool") == BooleanValue(False, indexed=False)
        assert entity.property_names() == frozenset({"str", "bool"})

    @pytest.mark.asyncio
    async def test_get_many(self, datastore):
        """Slots follow request order, None for absent keys."""
        await datastore.put(ENTITY1, ENTITY2)

        results = await datastore.get_many(KEY1, KEY3, KEY2)

        assert results == [ENTITY1, None, ENTITY2]

    @pytest.mark.asyncio
    async def test_nested_entity_survives_round_trip(self, datastore):
        await datastore.put(ENTITY3)

        entity = await datastore.get(KEY3)

        assert entity == ENTITY3
        nested = entity.get_property("partial1").value
        assert type(nested) is PartialEntity
        assert nested.key == PARTIAL_KEY2

    @pytest.mark.asyncio
    async def test_add(self, datastore):
        """add() on fresh keys stores all of them."""
        await datastore.add(ENTITY1, ENTITY2, ENTITY3)

        assert await datastore.get_many(KEY1, KEY2, KEY3) == [ENTITY1, ENTITY2, ENTITY3]

    @pytest.mark.asyncio
    async def test_add_existing_fails(self, datastore):
        """add() on an occupied key fails and stores nothing from the batch."""
        await datastore.add(ENTITY1)
        replacement = ENTITY1.builder().set_property("str", StringValue("other")).build()

        with pytest.raises(AlreadyExistsError) as exc_info:
            await datastore.add(ENTITY2, replacement)

        assert exc_info.value.keys == (KEY1,)
        assert exc_info.value.code == "ALREADY_EXISTS"
        assert await datastore.get_many(KEY1, KEY2) == [ENTITY1, None]

    @pytest.mark.asyncio
    async def test_update_missing_fails(self, datastore):
        """update() on an absent key fails and stores nothing from the batch."""
        await datastore.add(ENTITY1)
        changed = ENTITY1.builder().set_property("str", StringValue("other")).build()

        with pytest.raises(NotFoundError) as exc_info:
            await datastore.update(changed, ENTITY2)

        assert exc_info.value.keys == (KEY2,)
        assert await datastore.get(KEY1) == ENTITY1

    @pytest.mark.asyncio
    async def test_update_replaces_properties(self, datastore):
        """Properties absent from the new entity disappear."""
        await datastore.add(ENTITY1)
        replacement = EntityBuilder(KEY1).set_property("new", StringValue("x")).build()

        await datastore.update(replacement)

        stored = await datastore.get(KEY1)
        assert stored == replacement
        assert not stored.has_property("str")

    @pytest.mark.asyncio
    async def test_put(self, datastore):
        """put() creates, replaces, and is idempotent."""
        await datastore.put(ENTITY1)
        await datastore.put(ENTITY1)
        assert await datastore.get(KEY1) == ENTITY1

        replacement = ENTITY1.builder().remove_property("bool").build()
        await datastore.put(replacement)
        assert await datastore.get(KEY1) == replacement

    @pytest.mark.asyncio
    async def test_delete(self, datastore):
        """delete() removes entities and ignores absent keys."""
        await datastore.put(ENTITY1, ENTITY2)

        await datastore.delete(KEY1, KEY3, KEY1)

        assert await datastore.get_many(KEY1, KEY2) == [None, ENTITY2]

    @pytest.mark.asyncio
    async def test_delete_absent_key(self, datastore):
        await datastore.delete(KEY1)
        assert await datastore.get(KEY1) is None

    @pytest.mark.asyncio
    async def test_empty_writes_are_noops(self, datastore):
        await datastore.add()
        await datastore.put()
        await datastore.delete()
        assert await datastore.get_many() == []

    @pytest.mark.asyncio
    async def test_duplicate_key_in_batch_rejected(self, datastore):
        with pytest.raises(InvalidArgumentError, match="more than once"):
            await datastore.put(ENTITY1, ENTITY1)

    @pytest.mark.asyncio
    async def test_other_dataset_rejected(self, datastore):
        foreign = Entity(Key("other", KIND1, name="x"))

        with pytest.raises(InvalidArgumentError, match="dataset"):
            await datastore.put(foreign)
        with pytest.raises(InvalidArgumentError, match="dataset"):
            await datastore.get(foreign.key)

    @pytest.mark.asyncio
    async def test_partial_entity_rejected_for_writes(self, datastore):
        with pytest.raises(InvalidArgumentError, match="expected Entity"):
            await datastore.put(PartialEntity(PARTIAL_KEY1))

    @pytest.mark.asyncio
    async def test_new_key_builder(self, datastore):
        """Builders from the service are seeded with its dataset."""
        key = datastore.new_key_builder(KIND1).build("name")
        assert key == KEY1

        allocated = await datastore.new_key_builder(KIND2).add_ancestor(KIND1, 10).allocate_id_and_build()
        assert allocated.partial_key() == PARTIAL_KEY2
        assert allocated.has_id()

    def test_new_key_builder_uses_namespace(self, options, store):
        rpc = LocalDatastoreRpc(DatastoreServicer(store), DATASET)
        service = DatastoreService(options.with_overrides(namespace="ns"), rpc=rpc)

        assert service.new_key_builder(KIND1).build().namespace == "ns"

    def test_new_transaction_not_supported(self, datastore):
        with pytest.raises(NotImplementedError):
            datastore.new_transaction()

    @pytest.mark.asyncio
    async def test_batch_writer(self, datastore):
        """Queued mutations are applied by one commit."""
        await datastore.put(ENTITY1)

        batch = datastore.new_batch_writer()
        batch.add(ENTITY2).put(ENTITY3).delete(KEY1)
        assert batch.active
        await batch.submit()

        assert not batch.active
        assert await datastore.get_many(KEY1, KEY2, KEY3) == [None, ENTITY2, ENTITY3]

    @pytest.mark.asyncio
    async def test_batch_writer_is_atomic(self, datastore):
        await datastore.put(ENTITY1)

        batch = datastore.new_batch_writer().put(ENTITY3).add(ENTITY1)
        with pytest.raises(AlreadyExistsError):
            await batch.submit()

        assert await datastore.get(KEY3) is None

    @pytest.mark.asyncio
    async def test_batch_writer_submits_once(self, datastore):
        batch = datastore.new_batch_writer().put(ENTITY1)
        await batch.submit()

        with pytest.raises(DatastoreError) as exc_info:
            batch.put(ENTITY2)
        assert exc_info.value.code == "FAILED_PRECONDITION"

    @pytest.mark.asyncio
    async def test_ancestor_scenario(self, store):
        """Child entity derived from its parent under an ancestor path."""
        options = DatastoreServiceOptions(dataset="d")
        async with DatastoreService(options, rpc=LocalDatastoreRpc(DatastoreServicer(store), "d")) as datastore:
            parent_key = datastore.new_key_builder("K1").build("name")
            parent = (
                EntityBuilder(parent_key)
                .set_property("str", StringValue("str"))
                .set_property("bool", BooleanValue(False, indexed=False))
                .build()
            )
            child_key = KeyBuilder.from_parent(parent_key, "K2", 1).build()
            child = (
                EntityBuilder(child_key, parent)
                .remove_property("str")
                .set_property("null", NullValue())
                .build()
            )

            await datastore.add(parent, child)

            stored_parent, stored_child = await datastore.get_many(parent_key, child_key)
            assert stored_parent == parent
            assert stored_child.property_names() == frozenset({"bool", "null"})
            assert stored_child.key.parent() == parent_key
            assert str(stored_child.key) == 'd/K1:"name"/K2:1'
