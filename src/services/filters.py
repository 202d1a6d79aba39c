# src/services/filters.py
"""
Boolean predicate tree shared by instance checks and list queries.

Each node evaluates in memory against a loaded document (``matches``) and
compiles to a SQLAlchemy clause for a mapped model (``to_clause``). Both
evaluations must agree for every stored row. ``Not`` is only safe over
non-nullable columns or EXISTS clauses, where SQL has no third truth value.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Tuple

from sqlalchemy import and_, false, not_, or_, true

from utils.time_utils import as_utc


def _plain(value: Any) -> Any:
    """Compare enum members by value so str-valued enums match raw strings"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def _column(model, field: str):
    column = getattr(model, field, None)
    if column is None:
        raise AttributeError(f"{model.__name__} has no field '{field}'")
    return column


class Predicate:
    def matches(self, document) -> bool:
        raise NotImplementedError

    def to_clause(self, model):
        raise NotImplementedError

    def __and__(self, other: "Predicate") -> "Predicate":
        return all_of(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return any_of(self, other)

    def __invert__(self) -> "Predicate":
        return Not(self)


@dataclass(frozen=True)
class MatchAll(Predicate):
    def matches(self, document) -> bool:
        return True

    def to_clause(self, model):
        return true()


@dataclass(frozen=True)
class MatchNone(Predicate):
    def matches(self, document) -> bool:
        return False

    def to_clause(self, model):
        return false()


@dataclass(frozen=True)
class FieldEquals(Predicate):
    field: str
    value: Any

    def matches(self, document) -> bool:
        actual = getattr(document, self.field, None)
        if self.value is None:
            return actual is None
        return _plain(actual) == _plain(self.value)

    def to_clause(self, model):
        column = _column(model, self.field)
        if self.value is None:
            return column.is_(None)
        return column == self.value


@dataclass(frozen=True)
class FieldIn(Predicate):
    field: str
    values: FrozenSet[Any]

    def __init__(self, field: str, values: Iterable[Any]):
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "values", frozenset(values))

    def matches(self, document) -> bool:
        actual = getattr(document, self.field, None)
        if actual is None:
            return False
        return _plain(actual) in {_plain(v) for v in self.values}

    def to_clause(self, model):
        if not self.values:
            return false()
        return _column(model, self.field).in_(list(self.values))


@dataclass(frozen=True)
class FieldRange(Predicate):
    """Half-open range: gte <= value < lt, either bound optional"""

    field: str
    gte: Any = None
    lt: Any = None

    def matches(self, document) -> bool:
        actual = _plain(getattr(document, self.field, None))
        if actual is None:
            return False
        if self.gte is not None and actual < _plain(self.gte):
            return False
        if self.lt is not None and actual >= _plain(self.lt):
            return False
        return True

    def to_clause(self, model):
        column = _column(model, self.field)
        clauses = [column.is_not(None)]
        if self.gte is not None:
            clauses.append(column >= self.gte)
        if self.lt is not None:
            clauses.append(column < self.lt)
        return and_(*clauses)


@dataclass(frozen=True)
class TextContains(Predicate):
    """Case-insensitive substring match"""

    field: str
    text: str

    def matches(self, document) -> bool:
        actual = getattr(document, self.field, None)
        if actual is None:
            return False
        return self.text.lower() in str(actual).lower()

    def to_clause(self, model):
        escaped = (
            self.text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return _column(model, self.field).ilike(f"%{escaped}%", escape="\\")


@dataclass(frozen=True)
class ContainsMember(Predicate):
    """A keyed member collection holds an entry whose ``key`` equals ``value``"""

    collection: str
    key: str
    value: Any

    def matches(self, document) -> bool:
        members = getattr(document, self.collection, None) or ()
        wanted = _plain(self.value)
        return any(_plain(getattr(m, self.key, None)) == wanted for m in members)

    def to_clause(self, model):
        return _column(model, self.collection).any(**{self.key: self.value})


@dataclass(frozen=True)
class Not(Predicate):
    operand: Predicate

    def matches(self, document) -> bool:
        return not self.operand.matches(document)

    def to_clause(self, model):
        return not_(self.operand.to_clause(model))


@dataclass(frozen=True)
class AllOf(Predicate):
    operands: Tuple[Predicate, ...]

    def matches(self, document) -> bool:
        return all(p.matches(document) for p in self.operands)

    def to_clause(self, model):
        return and_(*(p.to_clause(model) for p in self.operands))


@dataclass(frozen=True)
class AnyOf(Predicate):
    operands: Tuple[Predicate, ...]

    def matches(self, document) -> bool:
        return any(p.matches(document) for p in self.operands)

    def to_clause(self, model):
        return or_(*(p.to_clause(model) for p in self.operands))


def all_of(*predicates: Optional[Predicate]) -> Predicate:
    """Conjunction that drops MatchAll, collapses on MatchNone and flattens"""
    operands = []
    for predicate in predicates:
        if predicate is None or isinstance(predicate, MatchAll):
            continue
        if isinstance(predicate, MatchNone):
            return MatchNone()
        if isinstance(predicate, AllOf):
            operands.extend(predicate.operands)
        else:
            operands.append(predicate)
    if not operands:
        return MatchAll()
    if len(operands) == 1:
        return operands[0]
    return AllOf(tuple(operands))


def any_of(*predicates: Optional[Predicate]) -> Predicate:
    """Disjunction that drops MatchNone, collapses on MatchAll and flattens"""
    operands = []
    for predicate in predicates:
        if predicate is None or isinstance(predicate, MatchNone):
            continue
        if isinstance(predicate, MatchAll):
            return MatchAll()
        if isinstance(predicate, AnyOf):
            operands.extend(predicate.operands)
        else:
            operands.append(predicate)
    if not operands:
        return MatchNone()
    if len(operands) == 1:
        return operands[0]
    return AnyOf(tuple(operands))
