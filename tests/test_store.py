"""Tests for MessageStore and StorePool."""

from __future__ import annotations

import asyncio

import pytest

from ramus.errors import MessageNotFoundError, StorageFailureError, ThreadNotFoundError
from ramus.models.config import StoreConfig
from ramus.store.message_store import MessageStore
from ramus.store.pool import StorePool


class TestThreads:
    async def test_create_thread(self, store):
        thread = await store.create_thread("Groceries", system_prompt="Be brief.")
        assert thread.id.startswith("thr_")
        assert thread.name == "Groceries"
        assert thread.system_prompt == "Be brief."
        assert thread.is_deleted is False

    async def test_create_thread_empty_prompt_stored_as_none(self, store):
        thread = await store.create_thread("No persona", system_prompt="")
        loaded = await store.get_thread(thread.id)
        assert loaded.system_prompt is None

    async def test_duplicate_thread_id_is_storage_failure(self, store):
        await store.create_thread("one", thread_id="thr_DUP")
        with pytest.raises(StorageFailureError):
            await store.create_thread("two", thread_id="thr_DUP")

    async def test_get_thread_not_found(self, store):
        with pytest.raises(ThreadNotFoundError):
            await store.get_thread("thr_missing")

    async def test_list_threads_most_recently_updated_first(self, store):
        first = await store.create_thread("first")
        await asyncio.sleep(0.01)
        second = await store.create_thread("second")
        await asyncio.sleep(0.01)
        await store.touch_thread(first.id)

        threads = await store.list_threads()
        assert [t.id for t in threads] == [first.id, second.id]

    async def test_list_threads_pagination(self, store):
        for i in range(5):
            await store.create_thread(f"t{i}")
        page = await store.list_threads(limit=2, offset=1)
        assert len(page) == 2

    async def test_update_thread_name_and_prompt(self, store, thread):
        updated = await store.update_thread(thread.id, name="Renamed", system_prompt="Pirate")
        assert updated.name == "Renamed"
        assert updated.system_prompt == "Pirate"

    async def test_update_thread_empty_prompt_clears(self, store):
        thread = await store.create_thread("t", system_prompt="Pirate")
        updated = await store.update_thread(thread.id, system_prompt="")
        assert updated.system_prompt is None
        assert updated.name == "t"

    async def test_update_missing_thread(self, store):
        with pytest.raises(ThreadNotFoundError):
            await store.update_thread("thr_missing", name="x")

    async def test_soft_delete_hides_thread_and_messages(self, store, thread):
        message = await store.create_message(thread.id, "user", "hi")
        await store.soft_delete_thread(thread.id)

        with pytest.raises(ThreadNotFoundError):
            await store.get_thread(thread.id)
        with pytest.raises(ThreadNotFoundError):
            await store.get_messages_by_thread(thread.id)
        assert await store.get_message(message.id) is None
        assert all(t.id != thread.id for t in await store.list_threads())

    async def test_soft_delete_twice_raises(self, store, thread):
        await store.soft_delete_thread(thread.id)
        with pytest.raises(ThreadNotFoundError):
            await store.soft_delete_thread(thread.id)


class TestMessages:
    async def test_create_and_get_message(self, store, thread):
        message = await store.create_message(thread.id, "user", "hello", is_context=False)
        loaded = await store.get_message(message.id)
        assert loaded is not None
        assert loaded.id.startswith("msg_")
        assert loaded.content == "hello"
        assert loaded.parent_id is None
        assert loaded.is_context is False
        assert loaded.updated_at is None

    async def test_seq_increases_in_creation_order(self, store, thread):
        ids = [(await store.create_message(thread.id, "user", str(i))).id for i in range(4)]
        messages = await store.get_messages_by_thread(thread.id)
        assert [m.id for m in messages] == ids
        seqs = [m.seq for m in messages]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 4

    async def test_get_message_missing_returns_none(self, store):
        assert await store.get_message("msg_missing") is None

    async def test_require_message_missing_raises(self, store):
        with pytest.raises(MessageNotFoundError):
            await store.require_message("msg_missing")

    async def test_get_children_in_creation_order(self, store, thread):
        root = await store.create_message(thread.id, "user", "root")
        a = await store.create_message(thread.id, "assistant", "a", parent_id=root.id)
        b = await store.create_message(thread.id, "assistant", "b", parent_id=root.id)
        children = await store.get_children(root.id)
        assert [c.id for c in children] == [a.id, b.id]

    async def test_get_parent_links(self, store, thread):
        root = await store.create_message(thread.id, "user", "root")
        child = await store.create_message(thread.id, "assistant", "c", parent_id=root.id)
        links = await store.get_parent_links(thread.id)
        assert links == [(root.id, None), (child.id, root.id)]

    async def test_update_content_stamps_updated_at(self, store, thread):
        message = await store.create_message(thread.id, "user", "before")
        await store.update_message_content(message.id, "after")
        loaded = await store.require_message(message.id)
        assert loaded.content == "after"
        assert loaded.updated_at is not None

    async def test_update_content_missing_raises(self, store):
        with pytest.raises(MessageNotFoundError):
            await store.update_message_content("msg_missing", "x")

    async def test_update_context_flag(self, store, thread):
        message = await store.create_message(thread.id, "user", "hi")
        await store.update_message_context(message.id, False)
        assert (await store.require_message(message.id)).is_context is False

    async def test_delete_messages_returns_count(self, store, thread):
        a = await store.create_message(thread.id, "user", "a")
        b = await store.create_message(thread.id, "user", "b")
        assert await store.delete_messages([a.id, b.id, "msg_missing"]) == 2
        assert await store.delete_messages([]) == 0

    async def test_delete_parent_before_child_fails_and_rolls_back(self, store, thread):
        root = await store.create_message(thread.id, "user", "root")
        await store.create_message(thread.id, "assistant", "reply", parent_id=root.id)
        with pytest.raises(StorageFailureError):
            await store.delete_messages([root.id])
        assert await store.get_message(root.id) is not None


class TestTransactions:
    async def test_exception_rolls_back_all_writes(self, store, thread):
        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.create_message(thread.id, "user", "lost", message_id="msg_LOST")
                raise RuntimeError("boom")
        assert await store.get_message("msg_LOST") is None

    async def test_nested_transaction_joins_outer(self, store, thread):
        async with store.transaction():
            await store.create_message(thread.id, "user", "a", message_id="msg_A")
            async with store.transaction():
                await store.create_message(thread.id, "user", "b", message_id="msg_B")
        assert await store.get_message("msg_A") is not None
        assert await store.get_message("msg_B") is not None

    async def test_ramus_errors_propagate_unchanged(self, store):
        with pytest.raises(MessageNotFoundError):
            async with store.transaction():
                await store.update_message_content("msg_missing", "x")

    async def test_concurrent_writers_serialise(self, store, thread):
        async def add(i: int) -> None:
            await store.create_message(thread.id, "user", str(i))

        await asyncio.gather(*(add(i) for i in range(10)))
        messages = await store.get_messages_by_thread(thread.id)
        assert len(messages) == 10
        assert len({m.seq for m in messages}) == 10

    async def test_uninitialized_store_raises(self, config):
        store = MessageStore(config.store)
        with pytest.raises(StorageFailureError):
            await store.get_thread("thr_x")


class TestStorePool:
    async def test_stores_share_connection(self, tmp_path):
        cfg = StoreConfig(db_path=str(tmp_path / "shared.db"))
        pool = StorePool()
        try:
            a = MessageStore(cfg, pool=pool)
            b = MessageStore(cfg, pool=pool)
            await a.initialize()
            await b.initialize()
            thread = await a.create_thread("shared")
            assert (await b.get_thread(thread.id)).name == "shared"
            assert pool.write_lock(cfg.db_path) is pool.write_lock(cfg.db_path)
            await a.close()
            # Pool-owned connection survives a store close.
            assert (await b.get_thread(thread.id)).id == thread.id
        finally:
            await pool.close_all()

    async def test_initialize_waits_for_open_transaction(self, config, pool, store, thread):
        """A second store joining the pool must not commit another store's pending writes."""
        started = asyncio.Event()

        async def aborted_cascade() -> None:
            with pytest.raises(RuntimeError):
                async with store.transaction():
                    await store.create_message(thread.id, "user", "half", message_id="msg_HALF")
                    started.set()
                    await asyncio.sleep(0.05)
                    raise RuntimeError("cascade aborted")

        async def late_initialize() -> MessageStore:
            await started.wait()
            late = MessageStore(config.store, pool=pool)
            await late.initialize()
            return late

        _, late = await asyncio.gather(aborted_cascade(), late_initialize())
        assert await store.get_message("msg_HALF") is None
        assert await late.get_message("msg_HALF") is None
        assert pool.schema_applied(config.store.db_path)

    async def test_standalone_store_persists_across_reopen(self, tmp_path):
        cfg = StoreConfig(db_path=str(tmp_path / "solo.db"))
        first = MessageStore(cfg)
        await first.initialize()
        thread = await first.create_thread("durable")
        await first.close()

        second = MessageStore(cfg)
        await second.initialize()
        try:
            assert (await second.get_thread(thread.id)).name == "durable"
        finally:
            await second.close()
