"""Recompute left/right/depth of a scope from parent links alone.

Used to repair a corrupted set, or to convert a plain parent-pointer tree.
Sibling order is taken from the existing bounds (then id), so a caller
migrating an ordered tree should lay out bounds or ids in that order first.
"""

import logging
from collections import defaultdict

from nestedset.expressions import F
from nestedset.models import Node, Transaction
from nestedset.store.base import RecordStore, Scope
from nestedset.transactions import tenacious_transaction
from nestedset.tree.validation import Validator

logger = logging.getLogger(__name__)


def _sibling_order(node: Node) -> tuple:
    # Missing bounds sort first, as NULLs do in SQL.
    return (
        node.left is not None,
        node.left or 0,
        node.right is not None,
        node.right or 0,
        node.id,
    )


def number_nodes(nodes: list[Node]) -> dict[int, tuple[int, int, int]]:
    """Pre-order numbering of a forest: node id -> (left, right, depth).

    Nodes whose parent is not in ``nodes`` are numbered as extra trees after
    the real roots.
    """
    ids = {n.id for n in nodes}
    children: dict[int | None, list[Node]] = defaultdict(list)
    orphans: list[Node] = []
    for node in nodes:
        if node.parent_id is not None and node.parent_id not in ids:
            orphans.append(node)
        else:
            children[node.parent_id].append(node)
    for siblings in children.values():
        siblings.sort(key=_sibling_order)
    if orphans:
        logger.warning(
            "Rebuild found %d node(s) whose parent is missing: %s",
            len(orphans),
            sorted(n.id for n in orphans),
        )
    tops = children[None] + sorted(orphans, key=_sibling_order)

    numbering: dict[int, tuple[int, int, int]] = {}
    counter = 0
    # Explicit stack of (node, depth, entered) so deep trees do not recurse.
    stack: list[tuple[Node, int, bool]] = [(n, 0, False) for n in reversed(tops)]
    lefts: dict[int, int] = {}
    while stack:
        node, depth, entered = stack.pop()
        if entered:
            counter += 1
            numbering[node.id] = (lefts[node.id], counter, depth)
            continue
        counter += 1
        lefts[node.id] = counter
        stack.append((node, depth, True))
        for child in reversed(children.get(node.id, [])):
            stack.append((child, depth + 1, False))
    return numbering


class Rebuilder:
    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._validator = Validator(store)

    async def rebuild(self, scope: Scope | None = None, tx: Transaction | None = None) -> bool:
        """Rebuild one scope, or every scope when None. Returns True on success.

        A scope that already validates is left without a single write.
        """
        await self.renumber(scope, tx)
        return True

    async def renumber(self, scope: Scope | None = None, tx: Transaction | None = None) -> int:
        """Rebuild the scopes that fail validation; returns the rows rewritten.

        Validity is decided inside the transaction that renumbers.
        """

        async def body(tx: Transaction) -> int:
            scopes = [scope] if scope is not None else await self._store.scopes()
            written = 0
            for each in scopes:
                if await self._validator.find_violation(each) is None:
                    continue
                written += await self._rebuild_scope(each)
            return written

        return await tenacious_transaction(self._store, body, parent=tx)

    async def _rebuild_scope(self, scope: Scope) -> int:
        nodes = await self._store.query(scope, lock=True)
        numbering = number_nodes(nodes)
        unreachable = [n.id for n in nodes if n.id not in numbering]
        if unreachable:
            logger.warning("Rebuild left nodes on a parent cycle untouched: %s", unreachable)
        written = 0
        for node in nodes:
            if node.id not in numbering:
                continue
            left, right, depth = numbering[node.id]
            if (node.left, node.right, node.depth) == (left, right, depth):
                continue
            written += await self._store.bulk_update(
                scope, F("id").eq(node.id), {"left": left, "right": right, "depth": depth}
            )
        logger.info(
            "Rebuilt nested set for scope %s (%d nodes, %d rewritten)", scope, len(nodes), written
        )
        return written
