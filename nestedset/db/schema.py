"""Database schema DDL. All statements use IF NOT EXISTS for idempotency."""

from nestedset.options import NestedSetOptions


def nodes_table_sql(options: NestedSetOptions) -> str:
    """DDL for a nested-set table laid out under the configured column names.

    Bounds carry plain indexes, not unique ones: a bulk move passes through
    rows that briefly share a bound before the statement completes.
    """
    scope_columns = "".join(f"    {name},\n" for name in options.scope)
    table = options.table
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    {options.parent_column} INTEGER,
    {options.left_column} INTEGER,
    {options.right_column} INTEGER,
    {options.depth_column} INTEGER,
{scope_columns}    attributes TEXT NOT NULL DEFAULT '{{}}',
    archived INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_{table}_{options.parent_column} ON {table}({options.parent_column});
CREATE INDEX IF NOT EXISTS idx_{table}_{options.left_column} ON {table}({options.left_column});
CREATE INDEX IF NOT EXISTS idx_{table}_{options.right_column} ON {table}({options.right_column});
"""
