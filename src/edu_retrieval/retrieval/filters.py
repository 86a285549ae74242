"""
Metadata filter expressions and the normalizer.

Filters are a small closed union:

    Eq(field, value)      field = value
    In(field, values)     field in {values}
    And(children)         conjunction of leaves

The index stores metadata as strings (plus boolean keyword flags), so
every leaf value is coerced to its stored representation before it is
compared: numbers become decimal strings, text is trimmed, and set
members are additionally case-folded because membership is matched
case-insensitively.

A normalized filter with one predicate is returned as a bare leaf, with
several predicates as an `And`. Index query languages commonly accept a
single predicate without the conjunction envelope, and some reject a
one-element `$and`.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# EXPRESSION TYPES
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Eq:
    """Equality leaf. `value` is a stored string or a boolean flag."""

    field: str
    value: str | bool


@dataclass(frozen=True)
class In:
    """Set-membership leaf. Values are trimmed and case-folded."""

    field: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class And:
    """Conjunction of leaves, one per predicate."""

    children: tuple[Union[Eq, In], ...]


Leaf = Union[Eq, In]
FilterExpression = Union[Eq, In, And]


# ---------------------------------------------------------------------------
# VALUE COERCION
# ---------------------------------------------------------------------------


def coerce_scalar(value: Any) -> Any:
    """
    Coerce a scalar to the representation the index stores.

    >>> coerce_scalar(6), coerce_scalar(6.0), coerce_scalar(" 과학 ")
    ('6', '6', '과학')
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        number = float(value)
        return str(int(number)) if number.is_integer() else repr(number)
    if isinstance(value, str):
        return value.strip()
    return value


def _member(value: Any) -> str:
    return str(coerce_scalar(value)).strip().casefold()


# ---------------------------------------------------------------------------
# NORMALIZER
# ---------------------------------------------------------------------------


def _leaf_pairs(raw: Any) -> list[tuple[str, Any]]:
    """Flatten a loose filter into (field, raw value) pairs."""
    if raw is None:
        return []
    if isinstance(raw, (Eq, In)):
        return [(raw.field, raw)]
    if isinstance(raw, And):
        return [(child.field, child) for child in raw.children]
    if not isinstance(raw, Mapping):
        logger.warning(f"Ignoring malformed filter of type {type(raw).__name__}")
        return []

    pairs: list[tuple[str, Any]] = []
    for key, value in raw.items():
        if key == "$and":
            if isinstance(value, (list, tuple)):
                for child in value:
                    pairs.extend(_leaf_pairs(child))
            else:
                logger.warning("Ignoring malformed $and clause")
            continue
        if not isinstance(key, str) or not key.strip() or key.startswith("$"):
            logger.warning(f"Ignoring unsupported filter key {key!r}")
            continue
        pairs.append((key.strip(), value))
    return pairs


def _normalize_members(values: Iterable[Any]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        member = _member(value)
        if member:
            seen.setdefault(member, None)
    return tuple(seen)


def _normalize_leaf(field: str, value: Any) -> Leaf | None:
    if value is None:
        return None

    if isinstance(value, Eq):
        return _normalize_leaf(field, value.value)
    if isinstance(value, In):
        return _normalize_leaf(field, list(value.values))

    if isinstance(value, Mapping):
        if set(value) == {"$in"}:
            value = value["$in"]
            if not isinstance(value, (list, tuple, set, frozenset)):
                logger.warning(f"Ignoring malformed $in for field {field!r}")
                return None
        elif set(value) == {"$eq"}:
            value = value["$eq"]
        else:
            logger.warning(f"Ignoring unsupported operator(s) {sorted(value)} for field {field!r}")
            return None

    if isinstance(value, (set, frozenset)):
        members = tuple(sorted(_normalize_members(value)))
        return In(field, members) if members else None
    if isinstance(value, (list, tuple)):
        members = _normalize_members(value)
        return In(field, members) if members else None

    scalar = coerce_scalar(value)
    if isinstance(scalar, bool):
        return Eq(field, scalar)
    if isinstance(scalar, str):
        return Eq(field, scalar) if scalar else None

    logger.warning(f"Ignoring unsupported value type {type(value).__name__} for field {field!r}")
    return None


def normalize_filter(raw: Any) -> FilterExpression | None:
    """
    Convert a loose filter into a canonical FilterExpression.

    Accepts a mapping of field -> scalar / collection, the index's dict
    dialect ({"f": {"$in": [...]}}, {"$and": [...]}) or an existing
    expression. Returns None when nothing survives normalisation.

    Examples:
        >>> normalize_filter({"grade": 6})
        Eq(field='grade', value='6')
        >>> normalize_filter({"subject": "과학", "grade": "6"})
        And(children=(Eq(field='subject', value='과학'), Eq(field='grade', value='6')))
        >>> normalize_filter({"subject": "  ", "chapter": []}) is None
        True
    """
    leaves = [
        leaf
        for field, value in _leaf_pairs(raw)
        if (leaf := _normalize_leaf(field, value)) is not None
    ]

    if not leaves:
        return None
    if len(leaves) == 1:
        return leaves[0]
    return And(tuple(leaves))


# ---------------------------------------------------------------------------
# INSPECTION AND RENDERING
# ---------------------------------------------------------------------------


def leaves_of(expr: FilterExpression | None) -> tuple[Leaf, ...]:
    """The predicates of an expression, in order."""
    if expr is None:
        return ()
    if isinstance(expr, And):
        return expr.children
    return (expr,)


def from_leaves(leaves: Iterable[Leaf]) -> FilterExpression | None:
    """Rebuild an expression from leaves, keeping the bare-leaf shape for one."""
    leaves = tuple(leaves)
    if not leaves:
        return None
    if len(leaves) == 1:
        return leaves[0]
    return And(leaves)


def combine(*exprs: FilterExpression | None) -> FilterExpression | None:
    """Conjunction of several (possibly absent) expressions."""
    leaves: list[Leaf] = []
    for expr in exprs:
        for leaf in leaves_of(expr):
            if leaf not in leaves:
                leaves.append(leaf)
    return from_leaves(leaves)


def to_where(expr: FilterExpression | None) -> dict[str, Any] | None:
    """Render an expression in the index's dict dialect."""
    if expr is None:
        return None
    if isinstance(expr, Eq):
        return {expr.field: expr.value}
    if isinstance(expr, In):
        return {expr.field: {"$in": list(expr.values)}}
    return {"$and": [to_where(child) for child in expr.children]}


def matches(expr: FilterExpression | None, metadata: Mapping[str, Any] | None) -> bool:
    """Evaluate an expression against a stored metadata mapping."""
    if expr is None:
        return True
    metadata = metadata or {}

    if isinstance(expr, And):
        return all(matches(child, metadata) for child in expr.children)

    stored = metadata.get(expr.field)
    if stored is None:
        return False

    if isinstance(expr, Eq):
        if isinstance(expr.value, bool):
            return stored is expr.value
        return coerce_scalar(stored) == expr.value

    if isinstance(stored, (list, tuple)):
        return any(_member(item) in expr.values for item in stored)
    return _member(stored) in expr.values
