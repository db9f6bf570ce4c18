"""Record store backed by an aiosqlite Database."""

import sqlite3
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from nestedset.db.connection import Database, is_lock_conflict
from nestedset.errors import NodeNotFoundError, StoreFailure, TransientStoreConflict
from nestedset.expressions import (
    And,
    Arith,
    Assignable,
    Case,
    Compare,
    Expression,
    F,
    In,
    IsNull,
    Not,
    Or,
    Predicate,
    Value,
    as_expression,
)
from nestedset.models import Node, Transaction
from nestedset.options import NestedSetOptions
from nestedset.store.base import RecordStore, Scope
from nestedset.utils.json import dump_attributes, parse_attributes

_COMPARISONS = {"=", "!=", "<", "<=", ">", ">="}
_ARITHMETIC = {"+", "-"}


@contextmanager
def translating_errors() -> Iterator[None]:
    """Map sqlite3 errors onto the engine's error taxonomy."""
    try:
        yield
    except sqlite3.Error as exc:
        if is_lock_conflict(exc):
            raise TransientStoreConflict(str(exc)) from exc
        raise StoreFailure(str(exc)) from exc


class SqliteRecordStore(RecordStore):
    """Nested-set rows in one SQLite table.

    SQLite has no row locks: the outermost transaction is opened with
    BEGIN IMMEDIATE, which takes the database write lock up front, so the
    ``lock`` flag of reads is already satisfied inside a transaction.
    """

    def __init__(self, db: Database, options: NestedSetOptions | None = None) -> None:
        self._db = db
        self.options = options or NestedSetOptions()

    @property
    def in_transaction(self) -> bool:
        return self._db.in_transaction

    @asynccontextmanager
    async def transaction(self, parent: Transaction | None = None) -> AsyncIterator[Transaction]:
        with translating_errors():
            async with self._db.transaction(parent) as tx:
                yield tx

    async def fetch(self, node_id: int, lock: bool = False) -> Node:
        with translating_errors():
            row = await self._db.fetchone(
                f"SELECT * FROM {self.options.table} WHERE id = ?", (node_id,)
            )
        if row is None:
            raise NodeNotFoundError(node_id)
        return self._row_to_node(row)

    async def query(
        self,
        scope: Scope,
        where: Predicate | None = None,
        order_by: Sequence[str] = (),
        lock: bool = False,
        limit: int | None = None,
    ) -> list[Node]:
        clause, params = self._where(scope, where)
        sql = f"SELECT * FROM {self.options.table} WHERE {clause}"
        if order_by:
            order_sql, order_params = self._order(order_by)
            sql += f" ORDER BY {order_sql}"
            params.extend(order_params)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with translating_errors():
            rows = await self._db.fetchall(sql, tuple(params))
        return [self._row_to_node(row) for row in rows]

    async def count(self, scope: Scope, where: Predicate | None = None) -> int:
        clause, params = self._where(scope, where)
        with translating_errors():
            row = await self._db.fetchone(
                f"SELECT COUNT(*) AS cnt FROM {self.options.table} WHERE {clause}",
                tuple(params),
            )
        return row["cnt"] if row is not None else 0

    async def lock_range(self, scope: Scope, where: Predicate) -> None:
        # BEGIN IMMEDIATE already holds the database write lock.
        return None

    async def insert(self, node: Node) -> Node:
        opts = self.options
        columns = [
            opts.parent_column,
            opts.left_column,
            opts.right_column,
            opts.depth_column,
            *opts.scope,
            "attributes",
            "archived",
        ]
        values = [
            node.parent_id,
            node.left,
            node.right,
            node.depth,
            *(node.scope.get(name) for name in opts.scope),
            dump_attributes(node.attributes),
            int(node.archived),
        ]
        placeholders = ", ".join("?" for _ in columns)
        with translating_errors():
            cursor = await self._db.execute(
                f"INSERT INTO {opts.table} ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(values),
            )
        assert cursor.lastrowid is not None
        return node.model_copy(update={"id": cursor.lastrowid}, deep=True)

    async def update_attributes(self, node: Node) -> None:
        with translating_errors():
            cursor = await self._db.execute(
                f"UPDATE {self.options.table} SET attributes = ? WHERE id = ?",
                (dump_attributes(node.attributes), node.id),
            )
        if cursor.rowcount == 0:
            raise NodeNotFoundError(node.id)

    async def bulk_update(
        self, scope: Scope, where: Predicate | None, assignments: dict[str, Assignable]
    ) -> int:
        if not assignments:
            return 0
        set_parts: list[str] = []
        params: list[Any] = []
        for field, value in assignments.items():
            column = self.options.column_for(field)
            if column is None or field == "id":
                raise ValueError(f"field cannot be bulk-updated: {field!r}")
            sql, expr_params = self._compile(as_expression(value))
            set_parts.append(f"{column} = {sql}")
            params.extend(expr_params)
        clause, where_params = self._where(scope, where)
        params.extend(where_params)
        with translating_errors():
            cursor = await self._db.execute(
                f"UPDATE {self.options.table} SET {', '.join(set_parts)} WHERE {clause}",
                tuple(params),
            )
        return cursor.rowcount

    async def bulk_delete(self, scope: Scope, where: Predicate | None) -> int:
        clause, params = self._where(scope, where)
        with translating_errors():
            cursor = await self._db.execute(
                f"DELETE FROM {self.options.table} WHERE {clause}", tuple(params)
            )
        return cursor.rowcount

    async def max(self, scope: Scope, field: str) -> int | None:
        column_sql, column_params = self._compile(F(field))
        clause, params = self._where(scope, None)
        with translating_errors():
            row = await self._db.fetchone(
                f"SELECT MAX({column_sql}) AS m FROM {self.options.table} WHERE {clause}",
                tuple(column_params + params),
            )
        return row["m"] if row is not None else None

    async def scopes(self) -> list[Scope]:
        if not self.options.scope:
            return [{}]
        columns = ", ".join(self.options.scope)
        with translating_errors():
            rows = await self._db.fetchall(
                f"SELECT DISTINCT {columns} FROM {self.options.table} ORDER BY {columns}"
            )
        return [{name: row[name] for name in self.options.scope} for row in rows]

    # -- SQL compilation --

    def _where(self, scope: Scope, where: Predicate | None) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for name in self.options.scope:
            parts.append(f"{name} IS ?")
            params.append(scope.get(name))
        if where is not None:
            sql, where_params = self._compile(where)
            parts.append(sql)
            params.extend(where_params)
        if not parts:
            return "1", params
        return " AND ".join(parts), params

    def _order(self, order_by: Sequence[str]) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for entry in order_by:
            descending = entry.startswith("-")
            sql, field_params = self._compile(F(entry.lstrip("-")))
            parts.append(f"{sql} {'DESC' if descending else 'ASC'}")
            params.extend(field_params)
        return ", ".join(parts), params

    def _compile(self, expr: Expression | Predicate) -> tuple[str, list[Any]]:
        if isinstance(expr, F):
            column = self.options.column_for(expr.name)
            if column is not None:
                return column, []
            return "json_extract(attributes, ?)", [f'$."{expr.name}"']
        if isinstance(expr, Value):
            value = int(expr.value) if isinstance(expr.value, bool) else expr.value
            return "?", [value]
        if isinstance(expr, Arith):
            if expr.op not in _ARITHMETIC:
                raise ValueError(f"unsupported operator: {expr.op!r}")
            return self._binary(expr.op, expr.left, expr.right)
        if isinstance(expr, Compare):
            if expr.op not in _COMPARISONS:
                raise ValueError(f"unsupported comparison: {expr.op!r}")
            return self._binary(expr.op, expr.left, expr.right)
        if isinstance(expr, Case):
            parts = ["CASE"]
            params: list[Any] = []
            for predicate, value in expr.whens:
                when_sql, when_params = self._compile(predicate)
                then_sql, then_params = self._compile(value)
                parts.append(f"WHEN {when_sql} THEN {then_sql}")
                params.extend(when_params + then_params)
            default_sql, default_params = self._compile(expr.default)
            parts.append(f"ELSE {default_sql} END")
            params.extend(default_params)
            return " ".join(parts), params
        if isinstance(expr, IsNull):
            sql, params = self._compile(expr.operand)
            return f"({sql} IS NULL)", params
        if isinstance(expr, In):
            if not expr.values:
                return "0", []
            sql, params = self._compile(expr.operand)
            placeholders = ", ".join("?" for _ in expr.values)
            return f"({sql} IN ({placeholders}))", params + list(expr.values)
        if isinstance(expr, (And, Or)):
            if not expr.items:
                return ("1" if isinstance(expr, And) else "0"), []
            joiner = " AND " if isinstance(expr, And) else " OR "
            compiled = [self._compile(item) for item in expr.items]
            return (
                "(" + joiner.join(sql for sql, _ in compiled) + ")",
                [p for _, item_params in compiled for p in item_params],
            )
        if isinstance(expr, Not):
            sql, params = self._compile(expr.item)
            return f"(NOT {sql})", params
        raise TypeError(f"cannot compile {type(expr).__name__}")

    def _binary(self, op: str, left: Expression, right: Expression) -> tuple[str, list[Any]]:
        left_sql, left_params = self._compile(left)
        right_sql, right_params = self._compile(right)
        return f"({left_sql} {op} {right_sql})", left_params + right_params

    def _row_to_node(self, row: Any) -> Node:
        """Convert a database row to a Node."""
        opts = self.options
        return Node(
            id=row["id"],
            parent_id=row[opts.parent_column],
            left=row[opts.left_column],
            right=row[opts.right_column],
            depth=row[opts.depth_column],
            scope={name: row[name] for name in opts.scope},
            attributes=parse_attributes(row["attributes"]),
            archived=bool(row["archived"]),
        )
