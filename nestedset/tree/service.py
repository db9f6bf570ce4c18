"""Nested set service: coordinates the record store and the tree engines."""

from collections.abc import Callable
from typing import Any

from nestedset.models import Node, Position, Transaction
from nestedset.store.base import RecordStore, Scope
from nestedset.tree.lifecycle import DestroyCallback, LifecycleEngine
from nestedset.tree.moves import MoveEngine, MoveTarget, move_possible
from nestedset.tree.queries import RangeQueries, each_with_level, sorted_each_with_level
from nestedset.tree.rebuild import Rebuilder
from nestedset.tree.validation import Validator


class NestedSetService:
    """Public entry point for one nested-set table.

    Structural writes go through the move and lifecycle engines; reads
    through RangeQueries. Every write accepts an optional ``tx`` so callers
    can group several operations in one transaction via ``transaction()``.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.options = store.options
        self.queries = RangeQueries(store)
        self.mover = MoveEngine(store, self.queries)
        self.lifecycle = LifecycleEngine(store, self.queries, self.mover)
        self.validator = Validator(store)
        self.rebuilder = Rebuilder(store)

    def transaction(self, parent: Transaction | None = None):
        """Open a store transaction to pass as ``tx`` to several writes."""
        return self.store.transaction(parent)

    # -- Writes --

    async def create(
        self,
        attributes: dict[str, Any] | None = None,
        scope: Scope | None = None,
        parent: Node | int | None = None,
        tx: Transaction | None = None,
    ) -> Node:
        return await self.lifecycle.create(attributes, scope, parent, tx)

    async def save(self, node: Node, tx: Transaction | None = None) -> Node:
        return await self.lifecycle.save(node, tx)

    async def destroy(
        self,
        node: Node,
        on_destroy: DestroyCallback | None = None,
        tx: Transaction | None = None,
    ) -> int:
        return await self.lifecycle.destroy(node, on_destroy, tx)

    async def move(
        self,
        node: Node,
        target: MoveTarget,
        position: Position | str,
        tx: Transaction | None = None,
    ) -> Node:
        return await self.mover.move(node, target, position, tx)

    async def move_to_left_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.mover.move_to_left_of(node, target, tx)

    async def move_to_right_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.mover.move_to_right_of(node, target, tx)

    async def move_to_child_of(self, node: Node, target: MoveTarget, tx: Transaction | None = None) -> Node:
        return await self.mover.move_to_child_of(node, target, tx)

    async def move_to_root(self, node: Node, tx: Transaction | None = None) -> Node:
        return await self.mover.move_to_root(node, tx)

    async def move_left(self, node: Node, tx: Transaction | None = None) -> Node:
        return await self.mover.move_left(node, tx)

    async def move_right(self, node: Node, tx: Transaction | None = None) -> Node:
        return await self.mover.move_right(node, tx)

    async def move_to_child_with_index(
        self, node: Node, parent: MoveTarget, index: int, tx: Transaction | None = None
    ) -> Node:
        return await self.mover.move_to_child_with_index(node, parent, index, tx)

    async def move_to_ordered_child_of(
        self,
        node: Node,
        parent: MoveTarget,
        key: str | Callable[[Node], Any],
        ascending: bool = True,
        tx: Transaction | None = None,
    ) -> Node:
        return await self.mover.move_to_ordered_child_of(node, parent, key, ascending, tx)

    def move_possible(self, node: Node, target: Node) -> bool:
        return move_possible(node, target)

    # -- Integrity --

    async def is_valid(self, scope: Scope | None = None) -> bool:
        return await self.validator.is_valid(self._scope_or_all(scope))

    async def assert_valid(self, scope: Scope | None = None) -> None:
        await self.validator.assert_valid(self._scope_or_all(scope))

    async def rebuild(self, scope: Scope | None = None, tx: Transaction | None = None) -> bool:
        return await self.rebuilder.rebuild(self._scope_or_all(scope), tx)

    async def renumber(self, scope: Scope | None = None, tx: Transaction | None = None) -> int:
        return await self.rebuilder.renumber(self._scope_or_all(scope), tx)

    # -- Reads --

    async def get(self, node_id: int) -> Node:
        return await self.store.fetch(node_id)

    async def reload(self, node: Node) -> Node:
        return await self.store.fetch(node.id)

    async def roots(self, scope: Scope | None = None) -> list[Node]:
        return await self.queries.roots(self.options.normalize_scope(scope))

    async def root(self, scope: Scope | None = None) -> Node | None:
        return await self.queries.root(self.options.normalize_scope(scope))

    async def leaves(self, scope: Scope | None = None) -> list[Node]:
        return await self.queries.all_leaves(self.options.normalize_scope(scope))

    async def root_of(self, node: Node) -> Node:
        return await self.queries.root_of(node)

    async def ancestors(self, node: Node) -> list[Node]:
        return await self.queries.ancestors(node)

    async def self_and_ancestors(self, node: Node) -> list[Node]:
        return await self.queries.self_and_ancestors(node)

    async def descendants(self, node: Node) -> list[Node]:
        return await self.queries.descendants(node)

    async def self_and_descendants(self, node: Node) -> list[Node]:
        return await self.queries.self_and_descendants(node)

    async def siblings(self, node: Node) -> list[Node]:
        return await self.queries.siblings(node)

    async def self_and_siblings(self, node: Node) -> list[Node]:
        return await self.queries.self_and_siblings(node)

    async def children(self, node: Node) -> list[Node]:
        return await self.queries.children(node)

    async def leaves_of(self, node: Node) -> list[Node]:
        return await self.queries.leaves(node)

    async def left_sibling(self, node: Node) -> Node | None:
        return await self.queries.left_sibling(node)

    async def right_sibling(self, node: Node) -> Node | None:
        return await self.queries.right_sibling(node)

    async def level(self, node: Node) -> int:
        return await self.queries.level(node)

    async def to_text(self, node: Node) -> str:
        return await self.queries.to_text(node)

    def _scope_or_all(self, scope: Scope | None) -> Scope | None:
        return None if scope is None else self.options.normalize_scope(scope)

    each_with_level = staticmethod(each_with_level)
    sorted_each_with_level = staticmethod(sorted_each_with_level)
