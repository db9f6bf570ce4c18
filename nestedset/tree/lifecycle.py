"""Insertion of new nodes and removal of subtrees."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from nestedset.errors import NodeNotFoundError, ScopeMismatchError
from nestedset.expressions import F
from nestedset.models import Node, Transaction
from nestedset.store.base import RecordStore, Scope
from nestedset.transactions import tenacious_transaction
from nestedset.tree.moves import MoveEngine
from nestedset.tree.queries import RangeQueries, self_and_descendants_of, without

logger = logging.getLogger(__name__)

DestroyCallback = Callable[[Node], Awaitable[None]]


class LifecycleEngine:
    """Places new nodes at the right edge of their scope and prunes subtrees."""

    def __init__(self, store: RecordStore, queries: RangeQueries, mover: MoveEngine) -> None:
        self._store = store
        self._queries = queries
        self._mover = mover
        self._options = store.options

    async def create(
        self,
        attributes: dict[str, Any] | None = None,
        scope: Scope | None = None,
        parent: Node | int | None = None,
        tx: Transaction | None = None,
    ) -> Node:
        """Insert a node as the last root of its scope, then under ``parent``.

        With a parent the node takes the parent's scope; a conflicting
        explicit ``scope`` is rejected.
        """

        async def body(tx: Transaction) -> Node:
            node_scope = self._options.normalize_scope(scope)
            parent_node = None
            if parent is not None:
                parent_id = parent.id if isinstance(parent, Node) else parent
                parent_node = await self._store.fetch(parent_id, lock=True)
                parent_scope = self._queries.scope_of(parent_node)
                if scope is not None and node_scope != parent_scope:
                    raise ScopeMismatchError(None, parent_node.id)
                node_scope = parent_scope
            node = await self._insert_at_right_edge(
                Node(scope=node_scope, attributes=attributes or {})
            )
            if parent_node is not None:
                node = await self._mover.move_to_child_of(node, parent_node, tx)
            return node

        return await tenacious_transaction(self._store, body, parent=tx)

    async def _insert_at_right_edge(self, node: Node) -> Node:
        scope = self._options.scope_of(node)
        highest = await self._store.query(scope, order_by=("-right",), lock=True, limit=1)
        max_right = highest[0].right if highest and highest[0].right is not None else 0
        return await self._store.insert(
            node.model_copy(
                update={"left": max_right + 1, "right": max_right + 2, "depth": 0, "parent_id": None}
            )
        )

    async def save(self, node: Node, tx: Transaction | None = None) -> Node:
        """Persist attribute changes and follow a changed ``parent_id``.

        Unsaved nodes are created (under their ``parent_id`` when set). For
        saved ones, a parent_id that differs from the stored value moves the
        node: child of the new parent, or to the roots for None.
        """
        if node.id is None:
            return await self.create(node.attributes, node.scope or None, node.parent_id, tx)

        async def body(tx: Transaction) -> Node:
            stored = await self._store.fetch(node.id, lock=True)
            await self._store.update_attributes(node)
            if node.parent_id == stored.parent_id:
                return await self._store.fetch(node.id)
            if node.parent_id is None:
                return await self._mover.move_to_root(stored, tx)
            return await self._mover.move_to_child_of(stored, node.parent_id, tx)

        return await tenacious_transaction(self._store, body, parent=tx)

    async def destroy(
        self,
        node: Node,
        on_destroy: DestroyCallback | None = None,
        tx: Transaction | None = None,
    ) -> int:
        """Remove ``node`` and its subtree. Returns the number of rows removed.

        The configured ``dependent`` policy decides how: ``delete_all``
        bulk-deletes descendants, ``destroy`` removes them one at a time in
        post-order and awaits ``on_destroy`` for each (the node itself
        included, last; with ``delete_all`` only the node itself is reported),
        ``soft_destroy`` only marks the subtree archived and leaves its
        interval in place.
        """
        if node.id is None or node.left is None or node.right is None:
            return 0

        async def body(tx: Transaction) -> int:
            try:
                current = await self._store.fetch(node.id, lock=True)
            except NodeNotFoundError:
                return 0
            scope = self._queries.scope_of(current)
            if self._options.dependent == "soft_destroy":
                return await self._store.bulk_update(
                    scope, self_and_descendants_of(current), {"archived": True}
                )

            await self._store.lock_range(scope, F("left").ge(current.left))

            removed = 0
            if self._options.dependent == "destroy":
                async for doomed in self.iter_post_order(current):
                    if on_destroy is not None:
                        await on_destroy(doomed)
                    removed += await self._store.bulk_delete(scope, F("id").eq(doomed.id))
            else:
                removed += await self._store.bulk_delete(
                    scope, F("left").gt(current.left).and_(F("right").lt(current.right))
                )
            if on_destroy is not None:
                await on_destroy(current)
            removed += await self._store.bulk_delete(scope, F("id").eq(current.id))

            diff = current.right - current.left + 1
            await self._store.bulk_update(
                scope, F("left").gt(current.right), {"left": F("left").minus(diff)}
            )
            await self._store.bulk_update(
                scope, F("right").gt(current.right), {"right": F("right").minus(diff)}
            )
            logger.debug("Destroyed node %s and %d descendant(s)", current.id, removed - 1)
            return removed

        return await tenacious_transaction(self._store, body, parent=tx)

    async def iter_post_order(self, node: Node) -> AsyncIterator[Node]:
        """Yield the strict descendants of ``node``, children before parents.

        Ascending right bound is exactly post-order.
        """
        descendants = await self._store.query(
            self._queries.scope_of(node),
            self_and_descendants_of(node).and_(without(node)),
            order_by=("right",),
            lock=True,
        )
        for descendant in descendants:
            yield descendant

