"""Interval-maintenance engines and the service that wires them."""

from nestedset.tree.service import NestedSetService

__all__ = ["NestedSetService"]
