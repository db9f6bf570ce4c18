"""Process-level settings and wiring of a ready-to-use service."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from nestedset.db.connection import Database
from nestedset.options import NestedSetOptions
from nestedset.store.sqlite import SqliteRecordStore
from nestedset.tree.service import NestedSetService


@dataclass
class Settings:
    db_path: str = "nestedset.db"
    options_path: str | None = None
    busy_timeout_ms: int = 5000

    def load_options(self) -> NestedSetOptions:
        if self.options_path:
            return NestedSetOptions.from_yaml(self.options_path)
        return NestedSetOptions()


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Read settings from the environment, after loading a .env file."""
    load_dotenv(env_file or Path.cwd() / ".env")
    return Settings(
        db_path=os.environ.get("NESTEDSET_DB_PATH", "nestedset.db"),
        options_path=os.environ.get("NESTEDSET_OPTIONS") or None,
        busy_timeout_ms=int(os.environ.get("NESTEDSET_BUSY_TIMEOUT_MS", "5000")),
    )


async def open_service(
    path: str | None = None,
    options: NestedSetOptions | None = None,
    settings: Settings | None = None,
) -> tuple[Database, NestedSetService]:
    """Connect a Database and wrap it in a NestedSetService.

    Explicit arguments win over settings. The caller owns the Database and
    must close it.
    """
    settings = settings or Settings()
    options = options or settings.load_options()
    db = await Database.connect(
        path or settings.db_path, options=options, busy_timeout_ms=settings.busy_timeout_ms
    )
    return db, NestedSetService(SqliteRecordStore(db, options))
