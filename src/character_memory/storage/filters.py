"""
Boolean filter expressions over vector metadata.

The core only builds these trees; each storage backend translates them to
its own query language (Qdrant filters) or evaluates them itself (the
in-memory store). to_dict() renders the Mongo-style form used in logs and
tool output, e.g.

    {"$and": [{"episodeNo": {"$lte": 2}}, {"$or": [{"scope": "world"}, ...]}]}
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple, Union

Scalar = Union[str, int, float, bool]


@dataclass(frozen=True)
class Eq:
    field: str
    value: Scalar

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: self.value}


@dataclass(frozen=True)
class Lte:
    field: str
    value: Union[int, float]

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: {"$lte": self.value}}


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Scalar, ...]

    def __init__(self, field: str, values: Iterable[Scalar]):
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "values", tuple(values))

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: {"$in": list(self.values)}}


@dataclass(frozen=True)
class And:
    clauses: Tuple["FilterExpr", ...]

    def __init__(self, *clauses: "FilterExpr"):
        if not clauses:
            raise ValueError("And requires at least one clause")
        object.__setattr__(self, "clauses", tuple(clauses))

    def to_dict(self) -> Dict[str, Any]:
        return {"$and": [clause.to_dict() for clause in self.clauses]}


@dataclass(frozen=True)
class Or:
    clauses: Tuple["FilterExpr", ...]

    def __init__(self, *clauses: "FilterExpr"):
        if not clauses:
            raise ValueError("Or requires at least one clause")
        object.__setattr__(self, "clauses", tuple(clauses))

    def to_dict(self) -> Dict[str, Any]:
        return {"$or": [clause.to_dict() for clause in self.clauses]}


@dataclass(frozen=True)
class Not:
    clause: "FilterExpr"

    def to_dict(self) -> Dict[str, Any]:
        return {"$not": self.clause.to_dict()}


FilterExpr = Union[Eq, Lte, In, And, Or, Not]


def matches(expr: FilterExpr, metadata: Dict[str, Any]) -> bool:
    """Evaluate a filter against a metadata dict (missing fields never match)."""
    if isinstance(expr, Eq):
        return expr.field in metadata and metadata[expr.field] == expr.value
    if isinstance(expr, Lte):
        value = metadata.get(expr.field)
        return isinstance(value, (int, float)) and value <= expr.value
    if isinstance(expr, In):
        return expr.field in metadata and metadata[expr.field] in expr.values
    if isinstance(expr, And):
        return all(matches(clause, metadata) for clause in expr.clauses)
    if isinstance(expr, Or):
        return any(matches(clause, metadata) for clause in expr.clauses)
    if isinstance(expr, Not):
        return not matches(expr.clause, metadata)
    raise TypeError(f"Unsupported filter node: {expr!r}")
