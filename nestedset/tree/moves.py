"""Relocation of a node, together with its whole subtree.

A move swaps two adjacent, disjoint integer ranges: the mover's interval
and the gap between it and the insertion point. Sorted, their endpoints are
a <= b < c <= d. Shifting every bound in [a, b] by d - b and every bound in
[c, d] by a - c swaps the ranges, so one conditional bulk update relocates
the subtree and fixes every sibling and ancestor bound in between.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from nestedset.errors import (
    ImpossibleMoveError,
    InvalidPositionError,
    PreconditionViolation,
    ScopeMismatchError,
    UnpersistedNodeError,
)
from nestedset.expressions import Case, F, Value, shift_case
from nestedset.models import Node, Position, Transaction, node_value
from nestedset.store.base import RecordStore
from nestedset.transactions import tenacious_transaction
from nestedset.tree.queries import RangeQueries, each_with_level, self_and_descendants_of

logger = logging.getLogger(__name__)

MoveTarget = Node | int | None


def parse_position(position: Position | str) -> Position:
    if isinstance(position, Position):
        return position
    try:
        return Position(position)
    except ValueError:
        raise InvalidPositionError(position) from None


def move_possible(node: Node, target: Node) -> bool:
    """False when target is the node, in another scope, or inside its subtree."""
    return (
        node.id != target.id
        and node.same_scope(target)
        and not (
            node.left <= target.left <= node.right or node.left <= target.right <= node.right
        )
    )


def compute_bound(node: Node, target: Node | None, position: Position) -> int:
    if position is Position.CHILD:
        return target.right
    if position is Position.LEFT:
        return target.left
    if position is Position.RIGHT:
        return target.right + 1
    return 1


class MoveEngine:
    def __init__(self, store: RecordStore, queries: RangeQueries) -> None:
        self._store = store
        self._queries = queries

    async def move(
        self,
        node: Node,
        target: MoveTarget,
        position: Position | str,
        tx: Transaction | None = None,
    ) -> Node:
        """Move ``node`` relative to ``target``. Returns the node as stored after.

        ``target`` may be a Node or a node id; it is ignored for ROOT moves.
        """
        position = parse_position(position)
        if not node.persisted:
            raise UnpersistedNodeError("move")

        async def body(tx: Transaction) -> Node:
            current = await self._store.fetch(node.id, lock=True)
            resolved = None
            if position is not Position.ROOT:
                resolved = await self._resolve_target(target)
                self._check_move(current, resolved)
            moved = await self._shift(current, resolved, position)
            if moved:
                await self._fix_depths(current.id)
            return await self._store.fetch(current.id)

        return await tenacious_transaction(self._store, body, parent=tx)

    async def _resolve_target(self, target: MoveTarget) -> Node:
        if target is None:
            raise PreconditionViolation("A target node is required for this move")
        target_id = target.id if isinstance(target, Node) else target
        if target_id is None:
            raise UnpersistedNodeError("move relative to")
        return await self._store.fetch(target_id, lock=True)

    def _check_move(self, node: Node, target: Node) -> None:
        if node.id == target.id:
            raise PreconditionViolation(f"Node {node.id} cannot be moved relative to itself")
        if not node.same_scope(target):
            raise ScopeMismatchError(node.id, target.id)
        if not move_possible(node, target):
            raise ImpossibleMoveError(node.id, target.id)

    async def _shift(self, node: Node, target: Node | None, position: Position) -> bool:
        """Apply the range swap. Returns False when the node is already there."""
        bound = compute_bound(node, target, position)
        if bound > node.right:
            bound -= 1
            other_bound = node.right + 1
        else:
            other_bound = node.left - 1

        if bound == node.right or bound == node.left:
            return False

        a, b, c, d = sorted([node.left, node.right, bound, other_bound])
        logger.debug("Moving node %s %s: a=%d b=%d c=%d d=%d", node.id, position.value, a, b, c, d)

        scope = self._queries.scope_of(node)
        await self._store.lock_range(scope, F("left").ge(a).and_(F("right").le(d)))

        if position is Position.CHILD:
            new_parent = target.id
        elif position is Position.ROOT:
            new_parent = None
        else:
            new_parent = target.parent_id

        affected = F("left").between(a, d).or_(F("right").between(a, d), F("id").eq(node.id))
        await self._store.bulk_update(
            scope,
            affected,
            {
                "left": shift_case("left", a, b, c, d),
                "right": shift_case("right", a, b, c, d),
                "parent_id": Case(
                    whens=((F("id").eq(node.id), Value(new_parent)),),
                    default=F("parent_id"),
                ),
            },
        )
        return True

    async def _fix_depths(self, node_id: int) -> None:
        """Recompute depth for the moved node and its whole subtree."""
        moved = await self._store.fetch(node_id, lock=True)
        depth = await self._queries.level(moved)
        subtree = await self._store.query(
            self._queries.scope_of(moved),
            self_and_descendants_of(moved),
            order_by=("left",),
            lock=True,
        )
        # each_with_level puts a non-root top node at level 1.
        offset = depth - (0 if moved.parent_id is None else 1)
        stale: dict[int, list[int]] = defaultdict(list)
        for each, level in each_with_level(subtree):
            if each.depth != level + offset:
                stale[level + offset].append(each.id)
        for new_depth, ids in stale.items():
            await self._store.bulk_update(
                self._queries.scope_of(moved), F("id").in_(ids), {"depth": new_depth}
            )

    # -- Convenience moves --

    async def move_to_left_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.move(node, target, Position.LEFT, tx)

    async def move_to_right_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.move(node, target, Position.RIGHT, tx)

    async def move_to_child_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.move(node, target, Position.CHILD, tx)

    async def move_to_root(self, node: Node, tx: Transaction | None = None) -> Node:
        return await self.move(node, None, Position.ROOT, tx)

    async def move_left(self, node: Node, tx: Transaction | None = None) -> Node:
        """Swap with the left sibling. No-op for the leftmost sibling."""
        sibling = await self._queries.left_sibling(node)
        if sibling is None:
            return node
        return await self.move_to_left_of(node, sibling, tx)

    async def move_right(self, node: Node, tx: Transaction | None = None) -> Node:
        """Swap with the right sibling. No-op for the rightmost sibling."""
        sibling = await self._queries.right_sibling(node)
        if sibling is None:
            return node
        return await self.move_to_right_of(node, sibling, tx)

    async def move_to_child_with_index(
        self, node: Node, parent: MoveTarget, index: int, tx: Transaction | None = None
    ) -> Node:
        """Make ``node`` the child of ``parent`` so that it ends at ``index``.

        ``index`` counts the current children, ``len(children)`` meaning last.
        A child already at ``index`` stays put; one sliding right lands after
        the child now at ``index``, so the index names its final slot.
        """

        async def body(tx: Transaction) -> Node:
            parent_node = await self._resolve_target(parent)
            children = await self._queries.children(parent_node)
            if not children:
                return await self.move_to_child_of(node, parent_node, tx)
            if not 0 <= index <= len(children):
                raise PreconditionViolation(
                    f"Child index {index} out of range for node {parent_node.id}"
                )
            mine = next((i for i, child in enumerate(children) if child.id == node.id), None)
            if index == len(children):
                if mine == index - 1:
                    return await self._store.fetch(node.id)
                return await self.move_to_right_of(node, children[-1], tx)
            if mine == index:
                return await self._store.fetch(node.id)
            # Sliding right past the child at ``index`` lands after it.
            if mine is not None and mine < index:
                return await self.move_to_right_of(node, children[index], tx)
            return await self.move_to_left_of(node, children[index], tx)

        return await tenacious_transaction(self._store, body, parent=tx)

    async def move_to_ordered_child_of(
        self,
        node: Node,
        parent: MoveTarget,
        key: str | Callable[[Node], Any],
        ascending: bool = True,
        tx: Transaction | None = None,
    ) -> Node:
        """Insert ``node`` among ``parent``'s children, keeping them sorted by ``key``.

        ``key`` is an attribute name or a callable. A None parent moves the
        node to the roots.
        """
        if parent is None:
            return await self.move_to_root(node, tx)
        sort_key = key if callable(key) else (lambda n: node_value(n, key))

        async def body(tx: Transaction) -> Node:
            parent_node = await self._resolve_target(parent)
            mine = sort_key(node)
            left = None
            for child in await self._queries.children(parent_node):
                theirs = sort_key(child)
                if (theirs < mine) if ascending else (theirs > mine):
                    left = child
            moved = await self.move_to_child_of(node, parent_node, tx)
            children = await self._queries.children(parent_node)
            if len(children) <= 1:
                return moved
            if left is not None:
                return await self.move_to_right_of(moved, left, tx)
            return await self.move_to_left_of(moved, children[0], tx)

        return await tenacious_transaction(self._store, body, parent=tx)
