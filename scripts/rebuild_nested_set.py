"""
Maintenance: validate every scope of a nested-set database and rebuild the
left/right/depth columns of the broken ones from their parent links.

Also converts a plain parent-pointer table: rows with empty bounds fail
validation and get numbered, siblings ordered by id.

Usage:
    python scripts/rebuild_nested_set.py [path/to/nestedset.db]

The database path defaults to NESTEDSET_DB_PATH (read from .env), column
names to the YAML file named by NESTEDSET_OPTIONS.
"""

import asyncio
import logging
import sys
from pathlib import Path

from nestedset.settings import load_settings, open_service


async def rebuild(db_path: Path) -> int:
    """Rebuild broken scopes. Returns the number of scopes rewritten."""
    settings = load_settings()
    db, service = await open_service(str(db_path), settings=settings)
    try:
        scopes = await service.store.scopes()
        rebuilt = 0
        for scope in scopes:
            check = await service.validator.find_violation(scope)
            if check is None:
                print(f"  OK      {scope or '(unscoped)'}")
                continue
            await service.rebuild(scope)
            rebuilt += 1
            print(f"  REBUILT {scope or '(unscoped)'} (failed check: {check})")
        return rebuilt
    finally:
        await db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    db_path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(load_settings().db_path)
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        sys.exit(1)
    print(f"Database: {db_path}")
    count = asyncio.run(rebuild(db_path))
    print(f"\nDone. Rebuilt {count} scope(s).")
