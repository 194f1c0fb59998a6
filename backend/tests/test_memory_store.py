"""
MarketSync Backend — In-Memory Store Tests
============================================

What we test:
    ✅ create/get/update/list with explicit and generated ids
    ✅ explicit id collision raises ConflictError
    ✅ set-union vs list-append on array fields, merge in the same write
    ✅ SERVER_TIMESTAMP resolution
    ✅ change feed: initial snapshot, commit order, close semantics, callbacks
"""

import asyncio

import pytest

from marketsync.exceptions import ConflictError, NotFoundError
from marketsync.services.memory_store import MemoryDocumentStore
from marketsync.services.store_base import SERVER_TIMESTAMP, DocumentSnapshot


class TestDocuments:

    @pytest.mark.asyncio
    async def test_create_with_explicit_id_and_read_back(self, store):
        doc_id = await store.create("users", {"name": "Casey"}, doc_id="c1")
        snapshot = await store.get_by_id("users", "c1")

        assert doc_id == "c1"
        assert snapshot.data == {"name": "Casey"}
        assert snapshot.version == 1

    @pytest.mark.asyncio
    async def test_create_generates_id_when_missing(self, store):
        first = await store.create("explore", {"url": "a"})
        second = await store.create("explore", {"url": "b"})
        assert first and second and first != second

    @pytest.mark.asyncio
    async def test_duplicate_explicit_id_conflicts(self, store):
        await store.create("messages", {"chat": []}, doc_id="c1__p1")
        with pytest.raises(ConflictError) as exc_info:
            await store.create("messages", {"chat": []}, doc_id="c1__p1")
        assert exc_info.value.doc_id == "c1__p1"

    @pytest.mark.asyncio
    async def test_missing_document_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get_by_id("users", "nobody")
        with pytest.raises(NotFoundError):
            await store.update("users", "nobody", {"name": "x"})

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, store):
        await store.create("users", {"name": "Casey", "email": "c@example.com"}, doc_id="c1")
        await store.update("users", "c1", {"name": "Casey B."})

        snapshot = await store.get_by_id("users", "c1")
        assert snapshot.data == {"name": "Casey B.", "email": "c@example.com"}
        assert snapshot.version == 2

    @pytest.mark.asyncio
    async def test_list_all_keeps_creation_order(self, store):
        for doc_id in ["b", "a", "c"]:
            await store.create("explore", {"url": doc_id}, doc_id=doc_id)
        assert [s.id for s in await store.list_all("explore")] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_list_all_of_unknown_collection_is_empty(self, store):
        assert await store.list_all("nothing-here") == []

    @pytest.mark.asyncio
    async def test_returned_data_is_a_copy(self, store):
        await store.create("users", {"followed": ["p1"]}, doc_id="c1")
        snapshot = await store.get_by_id("users", "c1")
        snapshot.data["followed"].append("p2")

        assert (await store.get_by_id("users", "c1")).data["followed"] == ["p1"]

    @pytest.mark.asyncio
    async def test_server_timestamp_is_resolved(self, store):
        await store.create("users", {"created_at": SERVER_TIMESTAMP}, doc_id="c1")
        value = (await store.get_by_id("users", "c1")).data["created_at"]
        assert isinstance(value, str) and value.endswith("+00:00")


class TestArrayFields:

    @pytest.mark.asyncio
    async def test_unique_append_is_set_union(self, store):
        await store.create("users", {}, doc_id="c1")

        assert await store.append_to_array_field("users", "c1", "followed", "p1") is True
        assert await store.append_to_array_field("users", "c1", "followed", "p1") is False
        assert (await store.get_by_id("users", "c1")).data["followed"] == ["p1"]

    @pytest.mark.asyncio
    async def test_concurrent_unique_appends_leave_one_copy(self, store):
        await store.create("users", {"followed": []}, doc_id="c1")
        await asyncio.gather(
            *[store.append_to_array_field("users", "c1", "followed", "p1") for _ in range(5)]
        )
        assert (await store.get_by_id("users", "c1")).data["followed"] == ["p1"]

    @pytest.mark.asyncio
    async def test_non_unique_append_keeps_duplicates(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        entry = {"content": "hi", "user_type": "consumer"}
        await store.append_to_array_field("messages", "m", "chat", entry, unique=False)
        await store.append_to_array_field("messages", "m", "chat", entry, unique=False)
        assert len((await store.get_by_id("messages", "m")).data["chat"]) == 2

    @pytest.mark.asyncio
    async def test_append_merges_fields_in_one_write(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        await store.append_to_array_field(
            "messages",
            "m",
            "chat",
            {"content": "hi", "timestamp": SERVER_TIMESTAMP},
            unique=False,
            merge={"updated_at": SERVER_TIMESTAMP},
        )

        snapshot = await store.get_by_id("messages", "m")
        assert snapshot.version == 2
        assert isinstance(snapshot.data["updated_at"], str)
        assert isinstance(snapshot.data["chat"][0]["timestamp"], str)

    @pytest.mark.asyncio
    async def test_remove_from_array_field(self, store):
        await store.create("users", {"followed": ["p1", "p2"]}, doc_id="c1")

        assert await store.remove_from_array_field("users", "c1", "followed", "p1") is True
        assert await store.remove_from_array_field("users", "c1", "followed", "p1") is False
        assert (await store.get_by_id("users", "c1")).data["followed"] == ["p2"]


class TestChangeFeed:

    @pytest.mark.asyncio
    async def test_initial_snapshot_then_changes_in_commit_order(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        subscription = await store.subscribe("messages", "m")

        await store.append_to_array_field("messages", "m", "chat", "m1", unique=False)
        await store.append_to_array_field("messages", "m", "chat", "m2", unique=False)

        seen = [await subscription.__anext__() for _ in range(3)]
        assert [s.data["chat"] for s in seen] == [[], ["m1"], ["m1", "m2"]]
        subscription.close()

    @pytest.mark.asyncio
    async def test_subscribe_to_missing_document_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.subscribe("messages", "missing")

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_ends_iteration(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        subscription = await store.subscribe("messages", "m")

        subscription.close()
        subscription.close()

        assert subscription.closed
        with pytest.raises(StopAsyncIteration):
            await subscription.__anext__()

    @pytest.mark.asyncio
    async def test_callback_receives_snapshots_until_closed(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        received = []
        subscription = await store.subscribe("messages", "m", callback=received.append)

        await store.append_to_array_field("messages", "m", "chat", "m1", unique=False)
        await asyncio.sleep(0.01)
        subscription.close()
        await store.append_to_array_field("messages", "m", "chat", "m2", unique=False)
        await asyncio.sleep(0.01)

        assert all(isinstance(s, DocumentSnapshot) for s in received)
        assert [s.data["chat"] for s in received] == [[], ["m1"]]

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self, store):
        await store.create("messages", {"chat": []}, doc_id="m")
        received = []

        async def on_snapshot(snapshot):
            await asyncio.sleep(0)
            received.append(snapshot.version)

        subscription = await store.subscribe("messages", "m", callback=on_snapshot)
        await store.update("messages", "m", {"updated_at": "now"})
        await asyncio.sleep(0.01)
        subscription.close()

        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_store_close_closes_every_subscription(self):
        store = MemoryDocumentStore()
        await store.create("messages", {}, doc_id="a")
        await store.create("messages", {}, doc_id="b")
        subs = [await store.subscribe("messages", "a"), await store.subscribe("messages", "b")]

        await store.close()

        assert all(s.closed for s in subs)
        assert await store.ping() is True
