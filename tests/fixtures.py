"""Shared test helpers: tree builders and shape snapshots."""

from typing import Any

from nestedset.models import Node
from nestedset.tree.queries import each_with_level
from nestedset.tree.service import NestedSetService

# (name, children) pairs, in sibling order.
TreeLayout = list[tuple[str, "TreeLayout"]]

# root
# ├── child_a
# │   └── leaf
# └── child_b
SAMPLE_TREE: TreeLayout = [
    ("root", [("child_a", [("leaf", [])]), ("child_b", [])]),
]


async def build_tree(
    service: NestedSetService,
    layout: TreeLayout,
    scope: dict[str, Any] | None = None,
    parent: Node | None = None,
) -> dict[str, Node]:
    """Create every node of ``layout`` through the public API, in pre-order.

    Returns name -> node, re-read after the whole tree exists so the bounds
    are current.
    """
    created: dict[str, Node] = {}

    async def add(entries: TreeLayout, under: Node | None) -> None:
        for name, children in entries:
            node = await service.create({"name": name}, scope=scope, parent=under)
            created[name] = node
            await add(children, node)

    await add(layout, parent)
    return await refresh(service, created)


async def refresh(service: NestedSetService, nodes: dict[str, Node]) -> dict[str, Node]:
    """Re-read every node of a name -> node mapping."""
    return {name: await service.reload(node) for name, node in nodes.items()}


def names(nodes: list[Node]) -> list[str]:
    return [n.attributes["name"] for n in nodes]


async def rows(service: NestedSetService, scope: dict[str, Any] | None = None) -> list[Node]:
    """Every row of a scope, archived ones included, in left order."""
    return await service.store.query(
        service.options.normalize_scope(scope), order_by=("left", "id")
    )


async def bounds(
    service: NestedSetService, scope: dict[str, Any] | None = None
) -> dict[str, tuple[int, int]]:
    return {n.attributes["name"]: (n.left, n.right) for n in await rows(service, scope)}


async def outline(
    service: NestedSetService, scope: dict[str, Any] | None = None
) -> list[tuple[str, int]]:
    """(name, level) of every node of a scope, in pre-order."""
    return [
        (n.attributes["name"], level) for n, level in each_with_level(await rows(service, scope))
    ]


async def assert_consistent(
    service: NestedSetService, scope: dict[str, Any] | None = None
) -> None:
    """The scope validates and every stored depth equals the ancestor count."""
    assert await service.is_valid(scope)
    for node in await rows(service, scope):
        assert node.depth == await service.queries.level(node), node
        if node.parent_id is not None:
            parent = await service.get(node.parent_id)
            assert parent.left < node.left < node.right < parent.right
