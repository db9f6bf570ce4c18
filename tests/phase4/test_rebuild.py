"""Recomputing bounds and depths from parent links."""

import asyncio
import logging

import pytest

from nestedset.expressions import F
from nestedset.models import Node
from nestedset.tree.rebuild import number_nodes
from tests.fixtures import SAMPLE_TREE, assert_consistent, bounds, build_tree, outline


class TestNumberNodes:
    def test_pre_order_numbering(self):
        nodes = [
            Node(id=1),
            Node(id=2, parent_id=1),
            Node(id=3, parent_id=2),
            Node(id=4, parent_id=1),
        ]
        assert number_nodes(nodes) == {
            1: (1, 8, 0),
            2: (2, 5, 1),
            3: (3, 4, 2),
            4: (6, 7, 1),
        }

    def test_siblings_follow_existing_bounds_then_id(self):
        nodes = [
            Node(id=1),
            Node(id=2, parent_id=1, left=9, right=10),
            Node(id=3, parent_id=1, left=4, right=5),
            Node(id=4, parent_id=1),
        ]
        numbering = number_nodes(nodes)
        assert [node_id for node_id, _ in sorted(numbering.items(), key=lambda kv: kv[1])] == [
            1,
            4,
            3,
            2,
        ]

    def test_orphans_become_extra_trees(self, caplog):
        nodes = [Node(id=1), Node(id=5, parent_id=99), Node(id=6, parent_id=5)]
        with caplog.at_level(logging.WARNING, logger="nestedset.tree.rebuild"):
            numbering = number_nodes(nodes)
        assert numbering == {1: (1, 2, 0), 5: (3, 6, 0), 6: (4, 5, 1)}
        assert "parent is missing" in caplog.text

    def test_cycle_is_left_out(self):
        nodes = [Node(id=1), Node(id=2, parent_id=3), Node(id=3, parent_id=2)]
        assert number_nodes(nodes) == {1: (1, 2, 0)}

    def test_deep_chain_does_not_recurse(self):
        nodes = [Node(id=1)] + [Node(id=i, parent_id=i - 1) for i in range(2, 3001)]
        numbering = number_nodes(nodes)
        assert numbering[1] == (1, 6000, 0)
        assert numbering[3000] == (3000, 3001, 2999)


class TestRebuild:
    async def test_valid_tree_is_left_alone(self, service):
        await build_tree(service, SAMPLE_TREE)
        before = await bounds(service)
        assert await service.rebuild() is True
        assert await service.renumber() == 0
        assert await bounds(service) == before

    async def test_renumber_counts_rewritten_rows(self, service):
        await build_tree(service, SAMPLE_TREE)
        await service.store.bulk_update({}, None, {"left": None, "right": None, "depth": None})
        assert await service.renumber() == 4
        await assert_consistent(service)

    async def test_validity_is_decided_under_the_lock(self, service):
        """A tree corrupted by a transaction still open when rebuild starts gets repaired."""
        await build_tree(service, SAMPLE_TREE)
        corrupted = asyncio.Event()
        release = asyncio.Event()

        async def corrupt():
            async with service.transaction():
                await service.store.bulk_update({}, None, {"left": None})
                corrupted.set()
                await release.wait()

        writer = asyncio.create_task(corrupt())
        await corrupted.wait()
        repair = asyncio.create_task(service.renumber())
        for _ in range(5):
            await asyncio.sleep(0)
        release.set()
        await writer
        assert await repair == 4
        await assert_consistent(service)

    async def test_rebuild_after_wiping_bounds(self, service):
        await build_tree(service, SAMPLE_TREE)
        before_bounds = await bounds(service)
        before_outline = await outline(service)
        await service.store.bulk_update({}, None, {"left": None, "right": None, "depth": None})
        assert not await service.is_valid()

        assert await service.rebuild() is True
        assert await bounds(service) == before_bounds
        assert await outline(service) == before_outline
        await assert_consistent(service)

    async def test_rebuild_keeps_sibling_order(self, service):
        tree = await build_tree(
            service, [("root", [("first", []), ("second", []), ("third", [])])]
        )
        await service.move_to_left_of(tree["third"], tree["first"])
        await service.store.bulk_update({}, F("id").eq(tree["root"].id), {"right": 1})
        assert await service.rebuild() is True
        assert [name for name, _ in await outline(service)] == ["root", "third", "first", "second"]
        await assert_consistent(service)

    async def test_converts_parent_pointer_rows(self, service):
        """Rows written with parent links only get numbered by id."""
        store = service.store
        top = await store.insert(Node(attributes={"name": "top"}))
        mid = await store.insert(Node(parent_id=top.id, attributes={"name": "mid"}))
        await store.insert(Node(parent_id=mid.id, attributes={"name": "low"}))
        await store.insert(Node(parent_id=top.id, attributes={"name": "side"}))

        assert await service.rebuild() is True
        assert await outline(service) == [("top", 0), ("mid", 1), ("low", 2), ("side", 1)]
        assert await bounds(service) == {
            "top": (1, 8),
            "mid": (2, 5),
            "low": (3, 4),
            "side": (6, 7),
        }
        await assert_consistent(service)

    async def test_rebuild_one_scope(self, scoped_service):
        await build_tree(scoped_service, SAMPLE_TREE, scope={"tree_id": 1})
        await build_tree(scoped_service, SAMPLE_TREE, scope={"tree_id": 2})
        await scoped_service.store.bulk_update({"tree_id": 2}, None, {"left": None})
        untouched = await bounds(scoped_service, {"tree_id": 1})

        assert await scoped_service.rebuild({"tree_id": 2}) is True
        assert await scoped_service.is_valid()
        assert await bounds(scoped_service, {"tree_id": 1}) == untouched

    async def test_rebuild_joins_open_transaction(self, service):
        await build_tree(service, SAMPLE_TREE)
        await service.store.bulk_update({}, None, {"left": None})
        with pytest.raises(RuntimeError):
            async with service.transaction() as tx:
                assert await service.rebuild(tx=tx) is True
                raise RuntimeError("abort")
        assert not await service.is_valid()
