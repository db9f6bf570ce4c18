"""In-process record store. Rows live in a dict; transactions work on a copy."""

import asyncio
import operator
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

from nestedset.errors import NodeNotFoundError
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
from nestedset.models import Node, Transaction, node_value
from nestedset.options import NestedSetOptions
from nestedset.store.base import RecordStore, Scope

_COMPARISONS = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}
_ARITHMETIC = {"+": operator.add, "-": operator.sub}
_ASSIGNABLE = {"parent_id", "left", "right", "depth", "archived"}


def evaluate(expr: Expression, node: Node) -> Any:
    """Value of an expression for one row, with SQL NULL propagation."""
    if isinstance(expr, F):
        return node_value(node, expr.name)
    if isinstance(expr, Value):
        return expr.value
    if isinstance(expr, Arith):
        left, right = evaluate(expr.left, node), evaluate(expr.right, node)
        if left is None or right is None:
            return None
        return _ARITHMETIC[expr.op](left, right)
    if isinstance(expr, Case):
        for predicate, value in expr.whens:
            if matches(predicate, node):
                return evaluate(value, node)
        return evaluate(expr.default, node)
    raise TypeError(f"cannot evaluate {type(expr).__name__}")


def truth(predicate: Predicate, node: Node) -> bool | None:
    """Three-valued truth of a predicate: True, False, or None (unknown)."""
    if isinstance(predicate, Compare):
        left, right = evaluate(predicate.left, node), evaluate(predicate.right, node)
        if left is None or right is None:
            return None
        return _COMPARISONS[predicate.op](left, right)
    if isinstance(predicate, IsNull):
        return evaluate(predicate.operand, node) is None
    if isinstance(predicate, In):
        value = evaluate(predicate.operand, node)
        if value is None:
            return None
        return value in predicate.values
    if isinstance(predicate, And):
        results = [truth(item, node) for item in predicate.items]
        if any(r is False for r in results):
            return False
        return None if any(r is None for r in results) else True
    if isinstance(predicate, Or):
        results = [truth(item, node) for item in predicate.items]
        if any(r is True for r in results):
            return True
        return None if any(r is None for r in results) else False
    if isinstance(predicate, Not):
        result = truth(predicate.item, node)
        return None if result is None else not result
    raise TypeError(f"cannot evaluate {type(predicate).__name__}")


def matches(predicate: Predicate | None, node: Node) -> bool:
    return predicate is None or truth(predicate, node) is True


class MemoryRecordStore(RecordStore):
    """Record store over a plain dict of Node snapshots.

    Outermost transactions are serialized by an asyncio.Lock and work on a
    private copy of the rows, published on commit. Readers outside a
    transaction see the last committed rows; writers outside one wait for
    the lock. Every nested level snapshots the rows and restores them when
    its body raises. Returned nodes are copies; callers cannot reach stored
    state.
    """

    def __init__(self, options: NestedSetOptions | None = None) -> None:
        self.options = options or NestedSetOptions()
        self._committed: dict[int, Node] = {}
        self._rows = self._committed
        self._next_id = 1
        self._depth: ContextVar[int] = ContextVar(f"nestedset_mem_depth_{id(self)}", default=0)
        self._lock = asyncio.Lock()

    @property
    def in_transaction(self) -> bool:
        return self._depth.get() > 0

    @asynccontextmanager
    async def transaction(self, parent: Transaction | None = None) -> AsyncIterator[Transaction]:
        if parent is not None:
            async with self._level(parent.depth + 1) as tx:
                yield tx
            return
        async with self._lock:
            self._rows = dict(self._committed)
            try:
                async with self._level(1) as tx:
                    yield tx
            except BaseException:
                self._rows = self._committed
                raise
            self._committed = self._rows

    @asynccontextmanager
    async def _level(self, depth: int) -> AsyncIterator[Transaction]:
        snapshot = (dict(self._rows), self._next_id)
        outer_depth = self._depth.get()
        self._depth.set(depth)
        try:
            yield Transaction(depth=depth)
        except BaseException:
            self._rows, self._next_id = snapshot
            raise
        finally:
            self._depth.set(outer_depth)

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[None]:
        # With no transaction open the working rows are the committed ones.
        if self.in_transaction:
            yield
        else:
            async with self._lock:
                yield

    def _visible(self) -> dict[int, Node]:
        return self._rows if self.in_transaction else self._committed

    async def fetch(self, node_id: int, lock: bool = False) -> Node:
        node = self._visible().get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node.model_copy(deep=True)

    async def query(
        self,
        scope: Scope,
        where: Predicate | None = None,
        order_by: Sequence[str] = (),
        lock: bool = False,
        limit: int | None = None,
    ) -> list[Node]:
        nodes = [
            n for n in self._visible().values() if self._in_scope(n, scope) and matches(where, n)
        ]
        nodes.sort(key=lambda n: n.id)
        for entry in reversed(order_by):
            field = entry.lstrip("-")
            descending = entry.startswith("-")
            nodes.sort(key=lambda n: _sort_key(node_value(n, field)), reverse=descending)
        if limit is not None:
            nodes = nodes[:limit]
        return [n.model_copy(deep=True) for n in nodes]

    async def count(self, scope: Scope, where: Predicate | None = None) -> int:
        return sum(
            1 for n in self._visible().values() if self._in_scope(n, scope) and matches(where, n)
        )

    async def lock_range(self, scope: Scope, where: Predicate) -> None:
        # Transactions hold the store lock until they end.
        return None

    async def insert(self, node: Node) -> Node:
        async with self._writing():
            stored = node.model_copy(
                update={"id": self._next_id, "scope": self.options.scope_of(node)}, deep=True
            )
            self._next_id += 1
            self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def update_attributes(self, node: Node) -> None:
        async with self._writing():
            stored = self._rows.get(node.id)
            if stored is None:
                raise NodeNotFoundError(node.id)
            self._rows[node.id] = stored.model_copy(
                update={"attributes": dict(node.attributes)}, deep=True
            )

    async def bulk_update(
        self, scope: Scope, where: Predicate | None, assignments: dict[str, Assignable]
    ) -> int:
        for field in assignments:
            if field not in _ASSIGNABLE:
                raise ValueError(f"field cannot be bulk-updated: {field!r}")
        expressions = {field: as_expression(value) for field, value in assignments.items()}
        async with self._writing():
            targets = [
                n for n in self._rows.values() if self._in_scope(n, scope) and matches(where, n)
            ]
            for node in targets:
                update = {field: evaluate(expr, node) for field, expr in expressions.items()}
                if "archived" in update:
                    update["archived"] = bool(update["archived"])
                self._rows[node.id] = node.model_copy(update=update)
        return len(targets)

    async def bulk_delete(self, scope: Scope, where: Predicate | None) -> int:
        async with self._writing():
            doomed = [
                node_id
                for node_id, n in self._rows.items()
                if self._in_scope(n, scope) and matches(where, n)
            ]
            for node_id in doomed:
                del self._rows[node_id]
        return len(doomed)

    async def max(self, scope: Scope, field: str) -> int | None:
        values = [
            node_value(n, field) for n in self._visible().values() if self._in_scope(n, scope)
        ]
        values = [v for v in values if v is not None]
        return max(values) if values else None

    async def scopes(self) -> list[Scope]:
        if not self.options.scope:
            return [{}]
        seen: list[Scope] = []
        for node in sorted(self._visible().values(), key=lambda n: n.id):
            scope = self.options.scope_of(node)
            if scope not in seen:
                seen.append(scope)
        return seen

    def _in_scope(self, node: Node, scope: Scope) -> bool:
        return all(node.scope.get(name) == scope.get(name) for name in self.options.scope)


def _sort_key(value: Any) -> tuple[bool, Any]:
    # NULLs first, as SQLite orders them ascending.
    return (value is not None, value if value is not None else 0)
