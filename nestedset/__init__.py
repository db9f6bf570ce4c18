"""Nested-set (interval) encoding of ordered forests over a record store."""

from nestedset.errors import (
    ImpossibleMoveError,
    InvalidPositionError,
    InvariantViolation,
    NestedSetError,
    NodeNotFoundError,
    PreconditionViolation,
    ScopeMismatchError,
    StoreFailure,
    StructuralAssignmentError,
    TransientStoreConflict,
    UnpersistedNodeError,
)
from nestedset.models import Node, Position, Transaction
from nestedset.options import NestedSetOptions
from nestedset.tree.service import NestedSetService

__all__ = [
    "ImpossibleMoveError",
    "InvalidPositionError",
    "InvariantViolation",
    "NestedSetError",
    "NestedSetOptions",
    "NestedSetService",
    "Node",
    "NodeNotFoundError",
    "Position",
    "PreconditionViolation",
    "ScopeMismatchError",
    "StoreFailure",
    "StructuralAssignmentError",
    "Transaction",
    "TransientStoreConflict",
    "UnpersistedNodeError",
]
