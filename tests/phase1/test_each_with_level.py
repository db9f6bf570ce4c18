"""Depth-tracking iteration over pre-order node sequences. No store needed."""

from nestedset.models import Node
from nestedset.tree.queries import each_with_level, sorted_each_with_level
from nestedset.tree.service import NestedSetService


def n(id, left, right, parent_id=None, name=None):
    return Node(
        id=id, left=left, right=right, parent_id=parent_id, attributes={"name": name or str(id)}
    )


def levels(pairs):
    return [(node.attributes["name"], level) for node, level in pairs]


# root{zeta, alpha, branch{c, b}, mid}
FOREST = [
    n(1, 1, 14, name="root"),
    n(2, 2, 3, 1, name="zeta"),
    n(3, 4, 5, 1, name="alpha"),
    n(4, 6, 11, 1, name="branch"),
    n(5, 7, 8, 4, name="c"),
    n(6, 9, 10, 4, name="b"),
    n(7, 12, 13, 1, name="mid"),
    n(8, 15, 16, name="second_root"),
]


class TestEachWithLevel:
    def test_forest_levels(self):
        assert levels(each_with_level(FOREST)) == [
            ("root", 0),
            ("zeta", 1),
            ("alpha", 1),
            ("branch", 1),
            ("c", 2),
            ("b", 2),
            ("mid", 1),
            ("second_root", 0),
        ]

    def test_subtree_starts_at_level_one(self):
        """A sequence whose first node has a parent starts below the roots."""
        assert levels(each_with_level(FOREST[3:6])) == [("branch", 1), ("c", 2), ("b", 2)]

    def test_empty(self):
        assert list(each_with_level([])) == []

    def test_exposed_on_service(self):
        assert NestedSetService.each_with_level is each_with_level


class TestSortedEachWithLevel:
    def test_sorts_runs_of_sibling_leaves(self):
        result = levels(sorted_each_with_level(FOREST, key=lambda node: node.attributes["name"]))
        assert result == [
            ("root", 0),
            ("alpha", 1),
            ("zeta", 1),
            ("branch", 1),
            ("b", 2),
            ("c", 2),
            ("mid", 1),
            ("second_root", 0),
        ]

    def test_descending_key(self):
        result = levels(
            sorted_each_with_level(FOREST[3:6], key=lambda node: -node.left)
        )
        assert result == [("branch", 1), ("b", 2), ("c", 2)]

    def test_branches_keep_their_place(self):
        result = [node.id for node, _ in sorted_each_with_level(FOREST, key=lambda node: node.id)]
        assert result == [1, 2, 3, 4, 5, 6, 7, 8]
