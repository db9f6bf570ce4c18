"""Store-neutral predicate and value expressions.

The engine describes the rows it wants to read, lock, update or delete with
these small immutable trees. Each record store interprets them: the SQLite
store compiles them to SQL, the memory store evaluates them row by row.

Field names are logical (``left``, ``right``, ``parent_id``, ``depth``,
``id``, ``archived``, a scope attribute, or an attribute key); stores map
them to physical columns.
"""

from dataclasses import dataclass
from typing import Any, Union


class Expression:
    """Base for value-producing nodes. Builder methods return new nodes."""

    def eq(self, other: Any) -> "Compare":
        return Compare("=", self, _wrap(other))

    def ne(self, other: Any) -> "Compare":
        return Compare("!=", self, _wrap(other))

    def lt(self, other: Any) -> "Compare":
        return Compare("<", self, _wrap(other))

    def le(self, other: Any) -> "Compare":
        return Compare("<=", self, _wrap(other))

    def gt(self, other: Any) -> "Compare":
        return Compare(">", self, _wrap(other))

    def ge(self, other: Any) -> "Compare":
        return Compare(">=", self, _wrap(other))

    def between(self, low: Any, high: Any) -> "And":
        """Inclusive on both ends, like SQL BETWEEN."""
        return And((self.ge(low), self.le(high)))

    def is_null(self) -> "IsNull":
        return IsNull(self)

    def is_(self, other: Any) -> "Predicate":
        """Null-safe equality: ``IS NULL`` for None, ``=`` otherwise."""
        if other is None:
            return IsNull(self)
        return self.eq(other)

    def in_(self, values: Any) -> "In":
        return In(self, tuple(values))

    def plus(self, other: Any) -> "Arith":
        return Arith("+", self, _wrap(other))

    def minus(self, other: Any) -> "Arith":
        return Arith("-", self, _wrap(other))


@dataclass(frozen=True)
class F(Expression):
    """Reference to a field of the current row."""

    name: str


@dataclass(frozen=True)
class Value(Expression):
    value: Any


@dataclass(frozen=True)
class Arith(Expression):
    op: str
    left: Expression
    right: Expression


@dataclass(frozen=True)
class Case(Expression):
    """First matching ``(predicate, value)`` wins, else ``default``."""

    whens: tuple[tuple["Predicate", Expression], ...]
    default: Expression


class Predicate:
    """Base for boolean nodes."""

    def and_(self, *others: "Predicate") -> "And":
        return And((self, *others))

    def or_(self, *others: "Predicate") -> "Or":
        return Or((self, *others))

    def negate(self) -> "Not":
        return Not(self)


@dataclass(frozen=True)
class Compare(Predicate):
    op: str
    left: Expression
    right: Expression


@dataclass(frozen=True)
class IsNull(Predicate):
    operand: Expression


@dataclass(frozen=True)
class In(Predicate):
    operand: Expression
    values: tuple[Any, ...]


@dataclass(frozen=True)
class And(Predicate):
    items: tuple[Predicate, ...]


@dataclass(frozen=True)
class Or(Predicate):
    items: tuple[Predicate, ...]


@dataclass(frozen=True)
class Not(Predicate):
    item: Predicate


Assignable = Union[Expression, Any]


def _wrap(value: Any) -> Expression:
    if isinstance(value, Expression):
        return value
    return Value(value)


def as_expression(value: Assignable) -> Expression:
    """Wrap plain Python values so bulk-update assignments accept both."""
    return _wrap(value)


def all_of(*predicates: Predicate | None) -> Predicate | None:
    """AND together the non-None predicates; None when there are none."""
    items = tuple(p for p in predicates if p is not None)
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return And(items)


def shift_case(field: str, a: int, b: int, c: int, d: int) -> Case:
    """Swap the disjoint ranges [a, b] and [c, d] of a bound column.

    Values in [a, b] move up by d - b, values in [c, d] move down by c - a,
    everything else is unchanged.
    """
    column = F(field)
    return Case(
        whens=(
            (column.between(a, b), column.plus(d - b)),
            (column.between(c, d), column.plus(a - c)),
        ),
        default=column,
    )
