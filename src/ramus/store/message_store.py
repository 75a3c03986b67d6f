"""SQLite-backed store for threads and their message trees."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from ramus.errors import (
    MessageNotFoundError,
    StorageFailureError,
    ThreadNotFoundError,
)
from ramus.ids import make_id
from ramus.models.config import StoreConfig
from ramus.models.message import Message, Role, Thread, now_ms
from ramus.store.pool import open_connection

if TYPE_CHECKING:
    from ramus.store.pool import StorePool

# SQLite's default host-parameter limit is 999 on older builds.
_DELETE_CHUNK = 500


class MessageStore:
    """
    Durable keyed storage for threads and messages.

    Every write runs inside :meth:`transaction`, which holds the per-database
    write lock and issues ``BEGIN IMMEDIATE`` ... ``COMMIT``. Transactions
    nest: a write method called from inside an open transaction in the same
    task joins it instead of committing on its own, so multi-step cascades
    commit or roll back as one unit.

    Soft-deleted threads are invisible: their rows stay on disk but every
    read treats them (and their messages) as absent.

    Usage (standalone)::

        store = MessageStore(StoreConfig())
        await store.initialize()
        try:
            thread = await store.create_thread("Groceries")
            root = await store.create_message(thread.id, "user", "hi")
        finally:
            await store.close()

    Usage (with pool)::

        pool = StorePool()
        store = MessageStore(config, pool=pool)
        await store.initialize()
        ...
        await pool.close_all()
    """

    def __init__(self, config: StoreConfig, pool: StorePool | None = None) -> None:
        self._config = config
        self._db_path = str(Path(config.db_path).expanduser())
        self._pool = pool
        self._conn: aiosqlite.Connection | None = None
        self._private_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None
        self._logger = structlog.get_logger("ramus.store")

    async def initialize(self) -> None:
        """
        Open (or borrow) a database connection and apply the schema.

        Raises:
            aiosqlite.Error: If the database cannot be opened or the schema fails.
        """
        if self._pool is not None:
            conn = await self._pool.acquire(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
        else:
            conn = await open_connection(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )

        # executescript() commits whatever is pending on the connection, so it
        # must not run while another store sharing it has a transaction open.
        async with self._write_lock():
            if self._pool is None or not self._pool.schema_applied(self._db_path):
                schema = (Path(__file__).parent / "schema.sql").read_text()
                await conn.executescript(schema)
                await conn.commit()
                if self._pool is not None:
                    self._pool.mark_schema_applied(self._db_path)

        self._conn = conn
        self._logger.info("store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """
        Release the database connection.

        A pool-owned connection is left open; the pool closes it.
        """
        if self._conn is None:
            return
        if self._pool is None:
            await self._conn.close()
        self._conn = None

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageFailureError("Store is not initialized. Call initialize() first.")
        return self._conn

    def _write_lock(self) -> asyncio.Lock:
        if self._pool is not None:
            return self._pool.write_lock(self._db_path)
        return self._private_lock

    # ── Transactions ───────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run the enclosed block as one atomic unit.

        On any exception the transaction is rolled back. Database errors are
        re-raised as :class:`StorageFailureError`; ramus errors (not found,
        invalid state) propagate unchanged.

        Yields:
            The connection to execute statements on.
        """
        conn = self._conn_or_raise()
        current = asyncio.current_task()
        if self._tx_owner is not None and self._tx_owner is current:
            yield conn
            return

        async with self._write_lock():
            self._tx_owner = current
            try:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException as exc:
                    await conn.rollback()
                    if isinstance(exc, aiosqlite.Error):
                        self._logger.error("transaction_rolled_back", error=str(exc))
                        raise StorageFailureError(str(exc)) from exc
                    raise
                else:
                    try:
                        await conn.commit()
                    except aiosqlite.Error as exc:
                        await conn.rollback()
                        raise StorageFailureError(str(exc)) from exc
            except aiosqlite.Error as exc:
                # BEGIN itself failed (busy database, closed connection).
                raise StorageFailureError(str(exc)) from exc
            finally:
                self._tx_owner = None

    # ── Thread Methods ─────────────────────────────────────────────────────────

    async def create_thread(
        self,
        name: str,
        *,
        system_prompt: str | None = None,
        thread_id: str | None = None,
    ) -> Thread:
        """
        Insert a new thread row.

        Args:
            name: Display name.
            system_prompt: Optional persistent per-thread instruction.
            thread_id: Pre-generated ID. Generated when omitted.

        Returns:
            The created Thread.
        """
        thread = Thread(
            id=thread_id or make_id("thr"),
            name=name,
            system_prompt=system_prompt or None,
        )
        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO threads (id, name, system_prompt, created_at, updated_at, deleted_at)
                VALUES (?, ?, ?, ?, ?, NULL)
                """,
                (thread.id, thread.name, thread.system_prompt, thread.created_at, thread.updated_at),
            )
        return thread

    async def get_thread(self, thread_id: str) -> Thread:
        """
        Fetch a live thread by ID.

        Raises:
            ThreadNotFoundError: If the thread does not exist or is soft-deleted.
        """
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT * FROM threads WHERE id = ? AND deleted_at IS NULL", (thread_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise ThreadNotFoundError(thread_id)
        return self._row_to_thread(row)

    async def list_threads(self, *, limit: int = 100, offset: int = 0) -> list[Thread]:
        """
        List live threads, most recently updated first.

        Args:
            limit: Maximum number of threads to return.
            offset: Number of threads to skip (for pagination).
        """
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT * FROM threads WHERE deleted_at IS NULL"
            " ORDER BY updated_at DESC, created_at DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_thread(r) for r in rows]

    async def update_thread(
        self,
        thread_id: str,
        *,
        name: str | None = None,
        system_prompt: str | None = None,
    ) -> Thread:
        """
        Update the name and/or system prompt of a live thread.

        Pass ``system_prompt=""`` to clear the prompt; ``None`` leaves it as is.

        Raises:
            ThreadNotFoundError: If the thread does not exist or is soft-deleted.
        """
        set_clauses = ["updated_at = ?"]
        params: list[Any] = [now_ms()]
        if name is not None:
            set_clauses.append("name = ?")
            params.append(name)
        if system_prompt is not None:
            set_clauses.append("system_prompt = ?")
            params.append(system_prompt or None)
        params.append(thread_id)

        async with self.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE threads SET {', '.join(set_clauses)}"
                " WHERE id = ? AND deleted_at IS NULL",
                params,
            )
            if cursor.rowcount == 0:
                raise ThreadNotFoundError(thread_id)
        return await self.get_thread(thread_id)

    async def touch_thread(self, thread_id: str) -> None:
        """Bump ``updated_at`` so the thread sorts first in listings."""
        async with self.transaction() as conn:
            await conn.execute(
                "UPDATE threads SET updated_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now_ms(), thread_id),
            )

    async def soft_delete_thread(self, thread_id: str) -> None:
        """
        Mark a thread as deleted. Its messages are retained but no longer readable.

        Raises:
            ThreadNotFoundError: If the thread does not exist or is already deleted.
        """
        now = now_ms()
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE threads SET deleted_at = ?, updated_at = ?"
                " WHERE id = ? AND deleted_at IS NULL",
                (now, now, thread_id),
            )
            if cursor.rowcount == 0:
                raise ThreadNotFoundError(thread_id)

    # ── Message Methods ────────────────────────────────────────────────────────

    async def create_message(
        self,
        thread_id: str,
        role: Role,
        content: str,
        *,
        parent_id: str | None = None,
        is_context: bool = True,
        message_id: str | None = None,
    ) -> Message:
        """
        Insert a message row.

        The store does not validate the parent beyond the foreign key; the
        tree editor checks that it is live and in the same thread.

        Returns:
            The stored message with its assigned ``seq``.
        """
        async with self.transaction() as conn:
            async with conn.execute("SELECT COALESCE(MAX(seq), 0) FROM messages") as cursor:
                row = await cursor.fetchone()
            message = Message(
                id=message_id or make_id("msg"),
                thread_id=thread_id,
                parent_id=parent_id,
                role=role,
                content=content,
                is_context=is_context,
                seq=(row[0] if row else 0) + 1,
            )
            await conn.execute(
                """
                INSERT INTO messages
                    (id, thread_id, parent_id, role, content, is_context,
                     created_at, updated_at, seq)
                VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?)
                """,
                (
                    message.id,
                    message.thread_id,
                    message.parent_id,
                    message.role,
                    message.content,
                    int(message.is_context),
                    message.created_at,
                    message.seq,
                ),
            )
        return message

    async def get_message(self, message_id: str) -> Message | None:
        """Fetch a message by ID, or ``None`` if absent or in a soft-deleted thread."""
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT m.* FROM messages m JOIN threads t ON t.id = m.thread_id"
            " WHERE m.id = ? AND t.deleted_at IS NULL",
            (message_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_message(row) if row is not None else None

    async def require_message(self, message_id: str) -> Message:
        """
        Fetch a message by ID.

        Raises:
            MessageNotFoundError: If absent or in a soft-deleted thread.
        """
        message = await self.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        return message

    async def get_messages_by_thread(self, thread_id: str) -> list[Message]:
        """
        Return every message of a live thread in creation order.

        Raises:
            ThreadNotFoundError: If the thread does not exist or is soft-deleted.
        """
        await self.get_thread(thread_id)
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT * FROM messages WHERE thread_id = ? ORDER BY seq ASC", (thread_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in rows]

    async def get_children(self, message_id: str) -> list[Message]:
        """Return the direct children of a message in creation order."""
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT m.* FROM messages m JOIN threads t ON t.id = m.thread_id"
            " WHERE m.parent_id = ? AND t.deleted_at IS NULL ORDER BY m.seq ASC",
            (message_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in rows]

    async def get_parent_links(self, thread_id: str) -> list[tuple[str, str | None]]:
        """Return ``(id, parent_id)`` for every message of a thread in creation order."""
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT id, parent_id FROM messages WHERE thread_id = ? ORDER BY seq ASC",
            (thread_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [(row["id"], row["parent_id"]) for row in rows]

    async def update_message_content(self, message_id: str, content: str) -> None:
        """
        Replace a message's content in place and stamp ``updated_at``.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE messages SET content = ?, updated_at = ? WHERE id = ?",
                (content, now_ms(), message_id),
            )
            if cursor.rowcount == 0:
                raise MessageNotFoundError(message_id)

    async def update_message_context(self, message_id: str, is_context: bool) -> None:
        """
        Set the ``is_context`` flag of a message.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE messages SET is_context = ? WHERE id = ?",
                (int(is_context), message_id),
            )
            if cursor.rowcount == 0:
                raise MessageNotFoundError(message_id)

    async def delete_messages(self, message_ids: Iterable[str]) -> int:
        """
        Delete a batch of messages in one transaction.

        IDs must be ordered children-before-parents when the batch is larger
        than one chunk, otherwise the parent foreign key aborts the batch.

        Returns:
            The number of rows removed.
        """
        ids = list(message_ids)
        if not ids:
            return 0
        deleted = 0
        async with self.transaction() as conn:
            for start in range(0, len(ids), _DELETE_CHUNK):
                chunk = ids[start : start + _DELETE_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                cursor = await conn.execute(
                    f"DELETE FROM messages WHERE id IN ({placeholders})", chunk
                )
                deleted += cursor.rowcount
        return deleted

    # ── Private Helpers ────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_thread(row: aiosqlite.Row) -> Thread:
        return Thread(
            id=row["id"],
            name=row["name"],
            system_prompt=row["system_prompt"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        return Message(
            id=row["id"],
            thread_id=row["thread_id"],
            parent_id=row["parent_id"],
            role=row["role"],
            content=row["content"],
            is_context=bool(row["is_context"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            seq=row["seq"],
        )


