"""Abstract record store consumed by the nested-set engine."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any

from nestedset.expressions import Assignable, Predicate
from nestedset.models import Node, Transaction
from nestedset.options import NestedSetOptions

Scope = dict[str, Any]


class RecordStore(ABC):
    """Persistence collaborator of the engine.

    Every method that takes a ``scope`` restricts itself to the rows whose
    scope attributes equal it. ``order_by`` entries are field names, with a
    leading ``-`` for descending order. ``lock=True`` asks the store to hold
    the rows it returns until the current transaction ends.
    """

    options: NestedSetOptions

    @abstractmethod
    async def fetch(self, node_id: int, lock: bool = False) -> Node:
        """Return one node. Raises NodeNotFoundError when absent."""

    @abstractmethod
    async def query(
        self,
        scope: Scope,
        where: Predicate | None = None,
        order_by: Sequence[str] = (),
        lock: bool = False,
        limit: int | None = None,
    ) -> list[Node]: ...

    @abstractmethod
    async def count(self, scope: Scope, where: Predicate | None = None) -> int: ...

    @abstractmethod
    async def lock_range(self, scope: Scope, where: Predicate) -> None:
        """Hold the matching rows until the current transaction ends.

        The SELECT ... FOR UPDATE of a row-locking database. Stores whose
        transactions already exclude every other writer do nothing here.
        """

    @abstractmethod
    async def insert(self, node: Node) -> Node:
        """Persist a new row and return it with its assigned id."""

    @abstractmethod
    async def update_attributes(self, node: Node) -> None:
        """Write a persisted node's attributes. Structure is left alone."""

    @abstractmethod
    async def bulk_update(
        self, scope: Scope, where: Predicate | None, assignments: dict[str, Assignable]
    ) -> int:
        """Update matching rows; every expression sees the row's old values."""

    @abstractmethod
    async def bulk_delete(self, scope: Scope, where: Predicate | None) -> int: ...

    @abstractmethod
    async def max(self, scope: Scope, field: str) -> int | None: ...

    @abstractmethod
    async def scopes(self) -> list[Scope]:
        """Distinct scope values present in the store."""

    @abstractmethod
    def transaction(
        self, parent: Transaction | None = None
    ) -> AbstractAsyncContextManager[Transaction]:
        """Open a transaction, or a nested one inside ``parent``."""

    @property
    @abstractmethod
    def in_transaction(self) -> bool: ...
