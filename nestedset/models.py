"""Canonical node record and the positions a node can be moved to.

Node is a snapshot of one row. Its structural fields (left, right, depth)
are maintained by the engine only: assigning them raises
StructuralAssignmentError. The engine never mutates a Node; every operation
returns a fresh snapshot read back from the store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from nestedset.errors import StructuralAssignmentError

PROTECTED_FIELDS = frozenset({"left", "right", "depth"})


@dataclass(frozen=True)
class Transaction:
    """Handle for an open transaction. depth 1 is the outermost one."""

    depth: int

    @property
    def nested(self) -> bool:
        return self.depth > 1


class Position(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    CHILD = "child"
    ROOT = "root"


class Node(BaseModel):
    id: int | None = None
    parent_id: int | None = None
    left: int | None = None
    right: int | None = None
    depth: int | None = None
    scope: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)
    archived: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if name in PROTECTED_FIELDS:
            raise StructuralAssignmentError(name)
        super().__setattr__(name, value)

    @property
    def persisted(self) -> bool:
        return self.id is not None and self.left is not None and self.right is not None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_child(self) -> bool:
        return not self.is_root

    @property
    def is_leaf(self) -> bool:
        """True for a persisted node with no descendants."""
        return self.persisted and self.right - self.left == 1

    def same_scope(self, other: "Node") -> bool:
        return self.scope == other.scope

    def is_descendant_of(self, other: "Node") -> bool:
        return other.left < self.left < other.right and self.same_scope(other)

    def is_or_is_descendant_of(self, other: "Node") -> bool:
        return other.left <= self.left < other.right and self.same_scope(other)

    def is_ancestor_of(self, other: "Node") -> bool:
        return self.left < other.left < self.right and self.same_scope(other)

    def is_or_is_ancestor_of(self, other: "Node") -> bool:
        return self.left <= other.left < self.right and self.same_scope(other)

    def label(self) -> str:
        """Human readable name: the `name` attribute when present."""
        name = self.attributes.get("name")
        return str(name) if name is not None else f"node-{self.id}"


def node_value(node: Node, field: str) -> Any:
    """Value of a logical field, scope attribute, or attribute key."""
    if field in Node.model_fields and field not in ("scope", "attributes"):
        return getattr(node, field)
    if field in node.scope:
        return node.scope[field]
    return node.attributes.get(field)
