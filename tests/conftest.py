"""Shared pytest fixtures for nestedset tests.

Most engine tests run twice: once against SQLite, once against the
in-memory store. Both must behave identically.
"""

import pytest

from nestedset.db.connection import Database
from nestedset.options import NestedSetOptions
from nestedset.store.memory import MemoryRecordStore
from nestedset.store.sqlite import SqliteRecordStore
from nestedset.tree.service import NestedSetService


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture(params=["sqlite", "memory"])
async def make_service(request):
    """Factory building a service for the parametrized backend.

    Each call gets its own table (and, for SQLite, its own in-memory
    database) laid out by the given options.
    """
    opened: list[Database] = []

    async def factory(options: NestedSetOptions | None = None) -> NestedSetService:
        options = options or NestedSetOptions()
        if request.param == "memory":
            return NestedSetService(MemoryRecordStore(options))
        database = await Database.connect(":memory:", options=options)
        opened.append(database)
        return NestedSetService(SqliteRecordStore(database, options))

    yield factory
    for database in opened:
        await database.close()


@pytest.fixture
async def service(make_service):
    """Unscoped service with the default delete_all policy."""
    return await make_service()


@pytest.fixture
async def scoped_service(make_service):
    """Service whose forests are partitioned by a tree_id attribute."""
    return await make_service(NestedSetOptions(scope=["tree_id"]))


@pytest.fixture
async def store(service):
    """Record store of the parametrized backend."""
    return service.store
