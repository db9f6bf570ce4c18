"""Async SQLite connection wrapper with WAL mode and explicit transactions."""

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

import aiosqlite

from nestedset.db.schema import nodes_table_sql
from nestedset.models import Transaction
from nestedset.options import NestedSetOptions


class Database:
    """Thin async wrapper around aiosqlite with WAL mode and auto-schema.

    The connection runs in autocommit mode; transaction() issues BEGIN
    IMMEDIATE for the outermost level and SAVEPOINTs below it. Statements
    executed outside a transaction are committed individually.

    Every coroutine shares the one connection, so the transaction depth is
    tracked per task. A statement from a task with no open transaction
    waits for the transaction lock: it sees only committed rows, and its
    own writes never land inside another task's transaction.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection
        self._depth: ContextVar[int] = ContextVar(f"nestedset_tx_depth_{id(self)}", default=0)
        self._tx_lock = asyncio.Lock()

    @classmethod
    async def connect(
        cls,
        path: str = "nestedset.db",
        options: NestedSetOptions | None = None,
        busy_timeout_ms: int = 5000,
    ) -> "Database":
        """Create a connection with WAL mode, busy timeout, and schema init."""
        conn = await aiosqlite.connect(path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        db = cls(conn)
        await db.ensure_schema(options or NestedSetOptions())
        return db

    async def ensure_schema(self, options: NestedSetOptions) -> None:
        """Create the nodes table for these options if missing. Idempotent."""
        async with self._statement():
            await self._conn.executescript(nodes_table_sql(options))

    @property
    def in_transaction(self) -> bool:
        """True when the calling task has a transaction open."""
        return self._depth.get() > 0

    @asynccontextmanager
    async def transaction(self, parent: Transaction | None = None) -> AsyncIterator[Transaction]:
        """Open a transaction, or a savepoint inside ``parent``.

        Commits on normal exit, rolls back when the body raises.
        """
        if parent is None:
            async with self._tx_lock:
                await self._conn.execute("BEGIN IMMEDIATE")
                self._depth.set(1)
                try:
                    yield Transaction(depth=1)
                except BaseException:
                    self._depth.set(0)
                    await self._conn.execute("ROLLBACK")
                    raise
                else:
                    self._depth.set(0)
                    await self._conn.execute("COMMIT")
        else:
            depth = parent.depth + 1
            savepoint = f"nestedset_sp_{depth}"
            await self._conn.execute(f"SAVEPOINT {savepoint}")
            self._depth.set(depth)
            try:
                yield Transaction(depth=depth)
            except BaseException:
                await self._conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                await self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            else:
                await self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            finally:
                self._depth.set(parent.depth)

    @asynccontextmanager
    async def _statement(self) -> AsyncIterator[None]:
        # Inside its own transaction a task already holds the lock.
        if self.in_transaction:
            yield
        else:
            async with self._tx_lock:
                yield

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Execute a single SQL statement."""
        async with self._statement():
            cursor = await self._conn.execute(sql, params or ())
            if not self.in_transaction:
                await self._conn.commit()
        return cursor

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        """Execute and return a single row."""
        async with self._statement():
            cursor = await self._conn.execute(sql, params or ())
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        """Execute and return all rows."""
        async with self._statement():
            cursor = await self._conn.execute(sql, params or ())
            return list(await cursor.fetchall())

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()


def is_lock_conflict(error: sqlite3.Error) -> bool:
    """True for errors that mean another writer holds the lock."""
    message = str(error).lower()
    return isinstance(error, sqlite3.OperationalError) and (
        "database is locked" in message
        or "database table is locked" in message
        or "deadlock" in message
        or "lock wait timeout" in message
    )
