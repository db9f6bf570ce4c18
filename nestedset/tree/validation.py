"""Global interval consistency checks.

The validator only reports. Repair is the rebuilder's job and is never
triggered from here.
"""

from collections import Counter

from nestedset.errors import InvariantViolation
from nestedset.models import Node
from nestedset.store.base import RecordStore, Scope

CHECK_LEFT_AND_RIGHTS = "left_and_rights"
CHECK_DUPLICATES = "duplicates"
CHECK_ROOTS = "roots"


def left_and_rights_valid(nodes: list[Node]) -> bool:
    """Bounds present, ordered, and strictly inside the parent's bounds.

    A parent missing from the node set is not a violation (outer join).
    """
    by_id = {n.id: n for n in nodes}
    for node in nodes:
        if node.left is None or node.right is None or node.left >= node.right:
            return False
        if node.parent_id is None:
            continue
        parent = by_id.get(node.parent_id)
        if parent is None or parent.left is None or parent.right is None:
            continue
        if node.left <= parent.left or node.right >= parent.right:
            return False
    return True


def no_duplicates(nodes: list[Node]) -> bool:
    """No two nodes share a left value, and no two share a right value."""
    for field in ("left", "right"):
        counts = Counter(getattr(n, field) for n in nodes)
        if any(count > 1 for count in counts.values()):
            return False
    return True


def roots_valid(roots: list[Node]) -> bool:
    """Roots sorted by left are strictly increasing in both bounds."""
    left = right = 0
    for root in roots:
        if root.left is None or root.right is None:
            return False
        if not (root.left > left and root.right > right):
            return False
        left, right = root.left, root.right
    return True


class Validator:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def find_violation(self, scope: Scope) -> str | None:
        """Name of the first failed check for one scope, or None."""
        nodes = await self._store.query(scope, order_by=("left", "id"))
        if not left_and_rights_valid(nodes):
            return CHECK_LEFT_AND_RIGHTS
        if not no_duplicates(nodes):
            return CHECK_DUPLICATES
        if not roots_valid([n for n in nodes if n.parent_id is None]):
            return CHECK_ROOTS
        return None

    async def is_valid(self, scope: Scope | None = None) -> bool:
        """True when the scope (or, for None, every scope) is consistent."""
        scopes = [scope] if scope is not None else await self._store.scopes()
        for each in scopes:
            if await self.find_violation(each) is not None:
                return False
        return True

    async def assert_valid(self, scope: Scope | None = None) -> None:
        scopes = [scope] if scope is not None else await self._store.scopes()
        for each in scopes:
            check = await self.find_violation(each)
            if check is not None:
                raise InvariantViolation(check, each)
