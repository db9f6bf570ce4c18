"""Relationship reads over the nested-set intervals.

Every relationship is a single range predicate on left/right (or an equality
on parent_id) AND-ed with the node's scope. Reads take no locks; the
nesting invariant holds at every commit, so a concurrent reader sees either
the old or the new tree, never a torn interval.
"""

from collections.abc import Callable, Iterable, Iterator
from typing import Any

from nestedset.expressions import F, Predicate, all_of
from nestedset.models import Node
from nestedset.store.base import RecordStore, Scope

# -- Predicates --


def self_and_ancestors_of(node: Node) -> Predicate:
    return F("left").le(node.left).and_(F("right").ge(node.right))


def self_and_descendants_of(node: Node) -> Predicate:
    # Both sides on left so an index on the left column serves the range.
    return F("left").ge(node.left).and_(F("left").lt(node.right))


def self_and_siblings_of(node: Node) -> Predicate:
    return F("parent_id").is_(node.parent_id)


def children_of(node: Node) -> Predicate:
    return F("parent_id").eq(node.id)


def without(node: Node) -> Predicate:
    return F("id").ne(node.id)


def is_leaf_row() -> Predicate:
    return F("right").minus(F("left")).eq(1)


def is_root_row() -> Predicate:
    return F("parent_id").is_null()


def not_archived() -> Predicate:
    return F("archived").eq(False)


# -- Depth-tracking iteration --


def each_with_level(nodes: Iterable[Node]) -> Iterator[tuple[Node, int]]:
    """Pair each node of a pre-order sequence with its level in that sequence.

    Roots get level 0; a sequence that starts below the roots starts at
    level 1. No queries are issued: the walk keeps a stack of the parent ids
    seen on the current path.
    """
    path: list[int | None] = [None]
    for node in nodes:
        if node.parent_id != path[-1]:
            if node.parent_id in path:
                while path[-1] != node.parent_id:
                    path.pop()
            else:
                path.append(node.parent_id)
        yield node, len(path) - 1


def sorted_each_with_level(
    nodes: Iterable[Node], key: Callable[[Node], Any]
) -> Iterator[tuple[Node, int]]:
    """Like each_with_level, but each run of sibling leaves is sorted by ``key``.

    Branches keep their position and leaves never cross a branch or a level
    change, so the tree shape is preserved.
    """
    run: list[tuple[Node, int]] = []
    for node, level in each_with_level(nodes):
        if run and not (node.is_leaf and node.parent_id == run[0][0].parent_id):
            yield from sorted(run, key=lambda pair: key(pair[0]))
            run = []
        if node.is_leaf:
            run.append((node, level))
        else:
            yield node, level
    yield from sorted(run, key=lambda pair: key(pair[0]))


class RangeQueries:
    """Reads the relationships of nodes from a record store."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._options = store.options

    def scope_of(self, node: Node) -> Scope:
        return self._options.scope_of(node)

    async def _read(
        self,
        scope: Scope,
        where: Predicate | None,
        include_archived: bool = False,
        order_by: tuple[str, ...] = ("left",),
    ) -> list[Node]:
        if not include_archived:
            where = all_of(where, not_archived())
        return await self._store.query(scope, where, order_by=order_by)

    async def self_and_ancestors(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(self.scope_of(node), self_and_ancestors_of(node), include_archived)

    async def ancestors(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(
            self.scope_of(node), all_of(self_and_ancestors_of(node), without(node)), include_archived
        )

    async def self_and_descendants(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(
            self.scope_of(node), self_and_descendants_of(node), include_archived
        )

    async def descendants(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(
            self.scope_of(node),
            all_of(self_and_descendants_of(node), without(node)),
            include_archived,
        )

    async def self_and_siblings(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(self.scope_of(node), self_and_siblings_of(node), include_archived)

    async def siblings(self, node: Node, include_archived: bool = False) -> list[Node]:
        return await self._read(
            self.scope_of(node), all_of(self_and_siblings_of(node), without(node)), include_archived
        )

    async def leaves(self, node: Node, include_archived: bool = False) -> list[Node]:
        """Descendants of ``node`` that have no children."""
        return await self._read(
            self.scope_of(node),
            all_of(self_and_descendants_of(node), without(node), is_leaf_row()),
            include_archived,
        )

    async def children(self, node: Node, include_archived: bool = False) -> list[Node]:
        order = self._options.order_field
        order_by = (order,) if order == "left" else (order, "left")
        return await self._read(self.scope_of(node), children_of(node), include_archived, order_by)

    async def roots(self, scope: Scope, include_archived: bool = False) -> list[Node]:
        return await self._read(scope, is_root_row(), include_archived)

    async def root(self, scope: Scope) -> Node | None:
        """First root of the scope, or None when it is empty."""
        roots = await self.roots(scope)
        return roots[0] if roots else None

    async def root_of(self, node: Node) -> Node:
        """The root of the tree containing ``node`` (``node`` itself for roots)."""
        chain = await self._read(
            self.scope_of(node),
            all_of(self_and_ancestors_of(node), is_root_row()),
            include_archived=True,
        )
        return chain[0]

    async def all_leaves(self, scope: Scope, include_archived: bool = False) -> list[Node]:
        return await self._read(scope, is_leaf_row(), include_archived)

    async def left_sibling(self, node: Node) -> Node | None:
        """Nearest sibling to the left."""
        found = await self._store.query(
            self.scope_of(node),
            all_of(self_and_siblings_of(node), F("left").lt(node.left), not_archived()),
            order_by=("-left",),
            limit=1,
        )
        return found[0] if found else None

    async def right_sibling(self, node: Node) -> Node | None:
        """Nearest sibling to the right."""
        found = await self._store.query(
            self.scope_of(node),
            all_of(self_and_siblings_of(node), F("left").gt(node.left), not_archived()),
            order_by=("left",),
            limit=1,
        )
        return found[0] if found else None

    async def level(self, node: Node) -> int:
        """Number of strict ancestors, counted from the intervals."""
        if node.parent_id is None:
            return 0
        return await self._store.count(
            self.scope_of(node), all_of(self_and_ancestors_of(node), without(node))
        )

    async def to_text(self, node: Node) -> str:
        """Outline of the subtree: one starred line per node."""
        offset = await self.level(node) - (0 if node.parent_id is None else 1)
        lines = [
            f"{'*' * (level + offset + 1)} {n.id} {n.label()} ({n.parent_id}, {n.left}, {n.right})"
            for n, level in each_with_level(await self.self_and_descendants(node))
        ]
        return "\n".join(lines)
