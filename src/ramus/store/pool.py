"""
Connection sharing for MessageStore.

Several ``MessageStore`` objects (typically one per request) can point at
the same database file. Sharing a ``StorePool`` gives them one
``aiosqlite.Connection`` and one write lock per path, so a cascade started by
one request (delete a subtree, edit and prune) runs to COMMIT or ROLLBACK
before any other store on that path may write or apply the schema.

Usage::

    pool = StorePool()

    async with ChatService.open(db_path=path, pool=pool) as chat_a:
        ...
    async with ChatService.open(db_path=path, pool=pool) as chat_b:
        ...  # same connection, schema applied only once

    await pool.close_all()
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import structlog

_logger = structlog.get_logger("ramus.store.pool")


async def open_connection(
    db_path: str,
    *,
    wal_mode: bool = True,
    connection_timeout: float = 30.0,
) -> aiosqlite.Connection:
    """Open a configured connection: Row factory, WAL, foreign keys on."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path, timeout=connection_timeout)
    try:
        conn.row_factory = aiosqlite.Row
        if wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except Exception:
        await conn.close()
        raise
    return conn


class StorePool:
    """
    Per-path registry of shared connections and write locks.

    Bound to a single event loop. The write lock for a path is held by
    ``MessageStore.transaction()`` from ``BEGIN IMMEDIATE`` until commit or
    rollback; schema application takes the same lock and runs once per path.
    """

    def __init__(self) -> None:
        self._connections: dict[str, aiosqlite.Connection] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._open_locks: dict[str, asyncio.Lock] = {}
        self._schema_applied: set[str] = set()

    async def acquire(
        self,
        db_path: str,
        *,
        wal_mode: bool = True,
        connection_timeout: float = 30.0,
    ) -> aiosqlite.Connection:
        """Return the shared connection for *db_path*, opening it on first use."""
        resolved = self._resolve(db_path)
        conn = self._connections.get(resolved)
        if conn is not None:
            return conn

        open_lock = self._open_locks.setdefault(resolved, asyncio.Lock())
        async with open_lock:
            conn = self._connections.get(resolved)
            if conn is None:
                conn = await open_connection(
                    resolved, wal_mode=wal_mode, connection_timeout=connection_timeout
                )
                self._connections[resolved] = conn
                self._write_locks[resolved] = asyncio.Lock()
                _logger.debug("pool_connection_opened", db_path=resolved)
            return conn

    def write_lock(self, db_path: str) -> asyncio.Lock:
        """
        The lock serialising transactions on *db_path*.

        Raises ``KeyError`` before ``acquire()``.
        """
        return self._write_locks[self._resolve(db_path)]

    def schema_applied(self, db_path: str) -> bool:
        return self._resolve(db_path) in self._schema_applied

    def mark_schema_applied(self, db_path: str) -> None:
        self._schema_applied.add(self._resolve(db_path))

    async def close_path(self, db_path: str) -> None:
        """Close the connection for one path and forget its lock and schema state."""
        resolved = self._resolve(db_path)
        conn = self._connections.pop(resolved, None)
        self._write_locks.pop(resolved, None)
        self._open_locks.pop(resolved, None)
        self._schema_applied.discard(resolved)
        if conn is not None:
            await conn.close()
            _logger.debug("pool_connection_closed", db_path=resolved)

    async def close_all(self) -> None:
        for path in list(self._connections):
            await self.close_path(path)

    @staticmethod
    def _resolve(db_path: str) -> str:
        return str(Path(db_path).expanduser().resolve())
