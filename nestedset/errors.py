"""Exceptions raised by the nested-set engine and its record stores."""

from typing import Any


class NestedSetError(Exception):
    """Base class for every error raised by nestedset."""


class PreconditionViolation(NestedSetError):
    """A structural operation was asked to do something it cannot do.

    Raised before any row is written, so the store is left untouched.
    """


class UnpersistedNodeError(PreconditionViolation):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation} a node that has not been saved")


class InvalidPositionError(PreconditionViolation):
    def __init__(self, position: Any) -> None:
        self.position = position
        super().__init__(
            f"Position should be 'child', 'left', 'right' or 'root' ({position!r} received)"
        )


class StructuralAssignmentError(PreconditionViolation):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(
            f"Unauthorized assignment to {field}: it is maintained by the nested set engine, "
            "use the move operations instead"
        )


class ScopeMismatchError(PreconditionViolation):
    def __init__(self, node_id: int | None, target_id: int | None) -> None:
        self.node_id = node_id
        self.target_id = target_id
        super().__init__(f"Nodes {node_id} and {target_id} are not in the same scope")


class ImpossibleMoveError(PreconditionViolation):
    def __init__(self, node_id: int | None, target_id: int | None) -> None:
        self.node_id = node_id
        self.target_id = target_id
        super().__init__(
            f"Impossible move of node {node_id}: target {target_id} is inside the moved subtree"
        )


class NodeNotFoundError(NestedSetError, LookupError):
    def __init__(self, node_id: int | None) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class TransientStoreConflict(NestedSetError):
    """Lock wait timeout or deadlock. Safe to retry the whole transaction."""


class StoreFailure(NestedSetError):
    """Any other record store error. Never retried."""


class InvariantViolation(NestedSetError):
    def __init__(self, check: str, scope: dict[str, Any] | None = None) -> None:
        self.check = check
        self.scope = scope or {}
        super().__init__(f"Nested set check failed: {check} (scope {self.scope})")
