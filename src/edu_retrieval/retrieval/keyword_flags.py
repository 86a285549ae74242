"""
Keyword flag codec - "scalar + flags" encoding of multi-value keywords.

The index's filter language has equality and set membership but no
array containment. A keyword list is therefore stored twice on every
document:

1. `keyword_primary`: the first normalised keyword, usable with `$in`
   for loose "appears relevant" filtering.
2. `kw_<token>: True`: one boolean flag per normalised keyword, usable
   for exact AND / OR membership tests.

Flag names are a pure function of the normalised token, so two documents
sharing a keyword always carry the identically-named flag.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, Mapping

from edu_retrieval.retrieval.filters import And, Eq, FilterExpression, In
from edu_retrieval.retrieval.tokenizer import normalize_text

PRIMARY_FIELD = "keyword_primary"
FLAG_PREFIX = "kw_"

_NON_WORD = re.compile(r"\W+")


class KeywordMode(str, Enum):
    """How several requested keywords combine."""

    AND = "AND"
    OR = "OR"

    @classmethod
    def _missing_(cls, value: object) -> "KeywordMode | None":
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


def normalize_keyword(keyword: Any) -> str:
    """Case-fold, trim and strip everything but word characters."""
    return _NON_WORD.sub("", normalize_text(str(keyword).strip()))


def normalize_keywords(keywords: Iterable[Any] | None) -> list[str]:
    """Normalise a keyword list, dropping blanks and duplicates (order kept)."""
    seen: dict[str, None] = {}
    for keyword in keywords or ():
        token = normalize_keyword(keyword)
        if token:
            seen.setdefault(token, None)
    return list(seen)


def flag_field(keyword: Any) -> str:
    """Name of the boolean flag field for a keyword."""
    token = normalize_keyword(keyword)
    if not token:
        raise ValueError(f"Keyword {keyword!r} is empty after normalisation")
    return f"{FLAG_PREFIX}{token}"


def encode_keywords(keywords: Iterable[Any] | None) -> dict[str, Any]:
    """Encode keywords as the primary scalar plus one flag per token."""
    tokens = normalize_keywords(keywords)
    if not tokens:
        return {}

    encoded: dict[str, Any] = {PRIMARY_FIELD: tokens[0]}
    for token in tokens:
        encoded[f"{FLAG_PREFIX}{token}"] = True
    return encoded


def decode_keywords(metadata: Mapping[str, Any]) -> list[str]:
    """Recover the normalised keyword list from flag fields, primary first."""
    tokens = [
        key[len(FLAG_PREFIX):]
        for key, value in metadata.items()
        if key.startswith(FLAG_PREFIX) and value is True
    ]
    primary = metadata.get(PRIMARY_FIELD)
    if primary in tokens:
        tokens.remove(primary)
        tokens.insert(0, primary)
    return tokens


def has_keywords(
    metadata: Mapping[str, Any] | None,
    keywords: Iterable[Any],
    mode: KeywordMode = KeywordMode.AND,
) -> bool:
    """Test flag membership; AND needs every flag, OR needs at least one."""
    tokens = normalize_keywords(keywords)
    if not metadata or not tokens:
        return False

    hits = (metadata.get(f"{FLAG_PREFIX}{token}") is True for token in tokens)
    if KeywordMode(mode) is KeywordMode.AND:
        return all(hits)
    return any(hits)


def keyword_filter(
    keywords: Iterable[Any],
    mode: KeywordMode = KeywordMode.OR,
) -> FilterExpression | None:
    """
    Filter expression selecting documents by keyword.

    OR targets the primary scalar with set membership; AND requires every
    flag to be set.
    """
    tokens = normalize_keywords(keywords)
    if not tokens:
        return None

    if KeywordMode(mode) is KeywordMode.OR:
        return In(PRIMARY_FIELD, tuple(tokens))

    leaves = tuple(Eq(f"{FLAG_PREFIX}{token}", True) for token in tokens)
    return leaves[0] if len(leaves) == 1 else And(leaves)
