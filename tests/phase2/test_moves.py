"""Moving nodes and subtrees: positions, no-ops, preconditions, depth."""

import pytest

from nestedset.errors import (
    ImpossibleMoveError,
    InvalidPositionError,
    NodeNotFoundError,
    PreconditionViolation,
    ScopeMismatchError,
    UnpersistedNodeError,
)
from nestedset.models import Node, Position
from nestedset.store.memory import matches
from tests.fixtures import (
    SAMPLE_TREE,
    assert_consistent,
    bounds,
    build_tree,
    names,
    outline,
    refresh,
    rows,
)


@pytest.fixture
async def tree(service):
    return await build_tree(service, SAMPLE_TREE)


class TestPositions:
    async def test_child_of_appends_as_last_child(self, service, tree):
        await service.move_to_child_of(tree["child_b"], tree["child_a"])
        assert await outline(service) == [
            ("root", 0),
            ("child_a", 1),
            ("leaf", 2),
            ("child_b", 2),
        ]
        assert await bounds(service) == {
            "root": (1, 8),
            "child_a": (2, 7),
            "leaf": (3, 4),
            "child_b": (5, 6),
        }
        await assert_consistent(service)

    async def test_left_of(self, service, tree):
        moved = await service.move_to_left_of(tree["child_b"], tree["child_a"])
        assert moved.parent_id == tree["root"].id
        assert names(await service.children(tree["root"])) == ["child_b", "child_a"]
        await assert_consistent(service)

    async def test_right_of_across_levels(self, service, tree):
        moved = await service.move_to_right_of(tree["leaf"], tree["child_b"])
        assert moved.parent_id == tree["root"].id
        assert moved.depth == 1
        assert names(await service.children(tree["root"])) == ["child_a", "child_b", "leaf"]
        await assert_consistent(service)

    async def test_root_becomes_first_root(self, service, tree):
        moved = await service.move_to_root(tree["leaf"])
        assert moved.parent_id is None
        assert moved.depth == 0
        assert (moved.left, moved.right) == (1, 2)
        assert names(await service.roots()) == ["leaf", "root"]
        await assert_consistent(service)

    async def test_generic_move_accepts_strings(self, service, tree):
        moved = await service.move(tree["child_b"], tree["child_a"], "child")
        assert moved.parent_id == tree["child_a"].id

    async def test_target_by_id(self, service, tree):
        moved = await service.move(tree["child_b"], tree["child_a"].id, Position.CHILD)
        assert moved.parent_id == tree["child_a"].id

    async def test_subtree_moves_together(self, service, tree):
        """Descendants follow the moved node and get new depths."""
        other = await service.create({"name": "other"})
        await service.move_to_child_of(tree["child_a"], other)
        assert await outline(service) == [
            ("root", 0),
            ("child_b", 1),
            ("other", 0),
            ("child_a", 1),
            ("leaf", 2),
        ]
        leaf = await service.reload(tree["leaf"])
        assert leaf.depth == 2
        assert leaf.is_descendant_of(await service.reload(other))
        await assert_consistent(service)

    async def test_subtree_to_root_resets_depths(self, service, tree):
        await service.move_to_root(tree["child_a"])
        fresh = await refresh(service, tree)
        assert fresh["child_a"].depth == 0
        assert fresh["leaf"].depth == 1
        await assert_consistent(service)

    async def test_deep_move_adjusts_every_level(self, service):
        chain = await build_tree(service, [("a", [("b", [("c", [("d", [])])])]), ("z", [])])
        await service.move_to_child_of(chain["a"], chain["z"])
        fresh = await refresh(service, chain)
        assert [fresh[n].depth for n in "abcd"] == [1, 2, 3, 4]
        await assert_consistent(service)


class TestNoOps:
    async def test_right_of_left_neighbour_changes_nothing(self, service, tree):
        before = await bounds(service)
        await service.move_to_right_of(tree["child_b"], tree["child_a"])
        assert await bounds(service) == before

    async def test_left_of_right_neighbour_changes_nothing(self, service, tree):
        before = await bounds(service)
        await service.move_to_left_of(tree["child_a"], tree["child_b"])
        assert await bounds(service) == before

    async def test_child_of_current_parent_when_last(self, service, tree):
        before = await bounds(service)
        await service.move_to_child_of(tree["child_b"], tree["root"])
        assert await bounds(service) == before

    async def test_root_move_of_first_root(self, service, tree):
        before = await bounds(service)
        moved = await service.move_to_root(tree["root"])
        assert await bounds(service) == before
        assert moved == tree["root"]


class TestRangeLocking:
    @pytest.fixture
    def locked(self, service, tree, monkeypatch):
        """Names of the rows covered by each lock_range call."""
        calls = []

        async def record(scope, where):
            calls.append(where)

        monkeypatch.setattr(service.store, "lock_range", record)
        return calls

    async def test_move_locks_the_swapped_range(self, service, tree, locked):
        snapshot = await rows(service)
        await service.move_to_left_of(tree["child_b"], tree["child_a"])
        assert len(locked) == 1
        assert sorted(n.attributes["name"] for n in snapshot if matches(locked[0], n)) == [
            "child_a",
            "child_b",
            "leaf",
        ]

    async def test_no_op_move_locks_nothing(self, service, tree, locked):
        await service.move_to_right_of(tree["child_b"], tree["child_a"])
        assert locked == []

    async def test_destroy_locks_everything_right_of_the_node(self, service, tree, locked):
        snapshot = await rows(service)
        await service.destroy(tree["child_a"])
        assert len(locked) == 1
        assert sorted(n.attributes["name"] for n in snapshot if matches(locked[0], n)) == [
            "child_a",
            "child_b",
            "leaf",
        ]


class TestRoundTrip:
    async def test_inverse_move_restores_bounds(self, service, tree):
        before = await bounds(service)
        await service.move_to_child_of(tree["child_b"], tree["child_a"])
        await service.move_to_right_of(tree["child_b"], tree["child_a"])
        assert await bounds(service) == before

    async def test_root_and_back(self, service, tree):
        before = await bounds(service)
        await service.move_to_root(tree["child_a"])
        await service.move_to_left_of(tree["child_a"], tree["child_b"])
        assert await bounds(service) == before
        await assert_consistent(service)


class TestPreconditions:
    async def test_into_own_descendant(self, service, tree):
        before = await bounds(service)
        with pytest.raises(ImpossibleMoveError):
            await service.move_to_child_of(tree["root"], tree["leaf"])
        assert await bounds(service) == before

    async def test_next_to_own_descendant(self, service, tree):
        with pytest.raises(ImpossibleMoveError):
            await service.move_to_left_of(tree["child_a"], tree["leaf"])

    async def test_relative_to_itself(self, service, tree):
        with pytest.raises(PreconditionViolation):
            await service.move_to_child_of(tree["child_a"], tree["child_a"])

    async def test_unknown_position(self, service, tree):
        with pytest.raises(InvalidPositionError) as exc_info:
            await service.move(tree["child_a"], tree["root"], "sideways")
        assert exc_info.value.position == "sideways"

    async def test_unpersisted_node(self, service, tree):
        with pytest.raises(UnpersistedNodeError):
            await service.move_to_child_of(Node(attributes={"name": "ghost"}), tree["root"])

    async def test_missing_target(self, service, tree):
        with pytest.raises(NodeNotFoundError):
            await service.move_to_child_of(tree["child_a"], 999)

    async def test_target_required(self, service, tree):
        with pytest.raises(PreconditionViolation):
            await service.move(tree["child_a"], None, Position.CHILD)

    async def test_move_possible(self, service, tree):
        assert service.move_possible(tree["child_b"], tree["child_a"])
        assert not service.move_possible(tree["root"], tree["leaf"])
        assert not service.move_possible(tree["leaf"], tree["leaf"])

    async def test_across_scopes(self, scoped_service):
        one = await build_tree(scoped_service, SAMPLE_TREE, scope={"tree_id": 1})
        two = await build_tree(scoped_service, [("solo", [])], scope={"tree_id": 2})
        with pytest.raises(ScopeMismatchError):
            await scoped_service.move_to_child_of(one["leaf"], two["solo"])
        assert await scoped_service.is_valid()
        assert not changed_position(await scoped_service.reload(one["leaf"]), one["leaf"])


def changed_position(after: Node, before: Node) -> bool:
    return (after.left, after.right, after.parent_id) != (before.left, before.right, before.parent_id)
