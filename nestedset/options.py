"""Column and scope configuration for a nested-set table.

One NestedSetOptions instance describes one table: which physical columns
hold the four structural fields, which attributes partition the table into
independent forests, and what destroying a node does to its subtree.
"""

import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, field_validator, model_validator

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Logical field names understood by every record store.
STRUCTURAL_FIELDS = ("id", "parent_id", "left", "right", "depth", "archived")


class NestedSetOptions(BaseModel):
    table: str = "nodes"
    parent_column: str = "parent_id"
    left_column: str = "lft"
    right_column: str = "rgt"
    depth_column: str = "depth"
    scope: list[str] = []
    dependent: Literal["delete_all", "destroy", "soft_destroy"] = "delete_all"
    order_column: str | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def _wrap_single_scope(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("table", "parent_column", "left_column", "right_column", "depth_column")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"not a valid column identifier: {value!r}")
        return value

    @field_validator("scope")
    @classmethod
    def _check_scope_identifiers(cls, value: list[str]) -> list[str]:
        for name in value:
            if not _IDENTIFIER.match(name):
                raise ValueError(f"not a valid scope attribute: {name!r}")
        if len(set(value)) != len(value):
            raise ValueError(f"duplicate scope attributes: {value}")
        return value

    @field_validator("order_column")
    @classmethod
    def _check_order_column(cls, value: str | None) -> str | None:
        if value is not None and not _IDENTIFIER.match(value):
            raise ValueError(f"not a valid order column: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_collisions(self) -> "NestedSetOptions":
        columns = [
            "id",
            self.parent_column,
            self.left_column,
            self.right_column,
            self.depth_column,
            "attributes",
            "archived",
        ]
        if len(set(columns)) != len(columns):
            raise ValueError(f"structural columns must be distinct: {columns}")
        reserved = set(columns) | set(STRUCTURAL_FIELDS)
        clashing = [name for name in self.scope if name in reserved]
        if clashing:
            raise ValueError(f"scope attributes clash with structural columns: {clashing}")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "NestedSetOptions":
        """Load options from a YAML mapping. An empty file gives the defaults."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    # -- Resolution --

    def column_for(self, field: str) -> str | None:
        """Physical column of a logical field, or None for an attribute key."""
        mapping = {
            "id": "id",
            "parent_id": self.parent_column,
            "left": self.left_column,
            "right": self.right_column,
            "depth": self.depth_column,
            "archived": "archived",
        }
        if field in mapping:
            return mapping[field]
        if field in self.scope:
            return field
        return None

    @property
    def order_field(self) -> str:
        """Field used for default read ordering of children."""
        if self.order_column is None or self.order_column == self.left_column:
            return "left"
        for field in ("parent_id", "right", "depth"):
            if self.column_for(field) == self.order_column:
                return field
        return self.order_column

    def normalize_scope(self, scope: dict[str, Any] | None) -> dict[str, Any]:
        """Restrict a scope mapping to the configured attributes."""
        scope = scope or {}
        return {name: scope.get(name) for name in self.scope}

    def scope_of(self, node: Any) -> dict[str, Any]:
        """Scope values of a node, restricted to the configured attributes."""
        return self.normalize_scope(node.scope)
