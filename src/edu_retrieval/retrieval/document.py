"""
Document model for the retrieval system.

Single responsibility: Define the structure of documents stored in the
vector index and of the transient candidates built during a search.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edu_retrieval.retrieval.filters import coerce_scalar
from edu_retrieval.retrieval.keyword_flags import (
    FLAG_PREFIX,
    PRIMARY_FIELD,
    decode_keywords,
    encode_keywords,
)

KNOWN_FIELDS = ("subject", "grade", "chapter")


class DocumentMetadata(BaseModel):
    """
    Metadata the engine reasons about, plus an open extension map.

    Scalars are held in their stored form: `grade=6` becomes "6".
    """

    model_config = ConfigDict(frozen=True)

    subject: str | None = None
    grade: str | None = None
    chapter: str | None = None
    keywords: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("subject", "grade", "chapter", mode="before")
    @classmethod
    def _coerce_known(cls, value: Any) -> str | None:
        if value is None:
            return None
        coerced = str(coerce_scalar(value))
        return coerced or None

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(item).strip() for item in value if str(item).strip()]

    def to_index_metadata(self) -> dict[str, Any]:
        """Flatten for storage, applying the keyword flag encoding."""
        stored: dict[str, Any] = {}
        for key, value in self.extra.items():
            coerced = coerce_scalar(value)
            if coerced is None or coerced == "":
                continue
            stored[key] = coerced

        for name in KNOWN_FIELDS:
            value = getattr(self, name)
            if value is not None:
                stored[name] = value

        stored.update(encode_keywords(self.keywords))
        return stored

    @classmethod
    def from_index_metadata(cls, metadata: Mapping[str, Any] | None) -> "DocumentMetadata":
        """Rebuild from stored metadata; keywords come back normalised."""
        metadata = dict(metadata or {})
        keywords = metadata.pop("keywords", None)
        if not isinstance(keywords, list):
            keywords = decode_keywords(metadata)

        known = {name: metadata.pop(name, None) for name in KNOWN_FIELDS}
        extra = {
            key: value
            for key, value in metadata.items()
            if key != PRIMARY_FIELD and not key.startswith(FLAG_PREFIX)
        }
        return cls(**known, keywords=keywords, extra=extra)


@dataclass
class Document:
    """
    A document as returned to callers.

    `score` is the ranking signal the result was ordered by
    (None for unranked fallback results).
    """

    id: str
    text: str
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    score: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "metadata": self.metadata.model_dump(),
            "score": self.score,
        }


@dataclass
class Candidate:
    """
    A document plus its relevance signals, before final ranking.

    `metadata` is the stored (flag-encoded) form so keyword flags can be
    tested directly.
    """

    id: str
    text: str
    metadata: dict[str, Any]
    distance: float
    keyword_score: float = 0.0
    combined_score: float | None = None

    @property
    def vector_relevance(self) -> float:
        """Cosine-style distance in [0, ~2] mapped to a relevance in [0, 1]."""
        return max(0.0, 1.0 - self.distance)

    @property
    def relevance(self) -> float:
        """Combined score when scored, otherwise vector relevance."""
        if self.combined_score is not None:
            return self.combined_score
        return self.vector_relevance

    def scored(self, keyword_score: float, combined_score: float) -> "Candidate":
        return replace(self, keyword_score=keyword_score, combined_score=combined_score)

    def to_document(self, score: float | None = None) -> Document:
        return Document(
            id=self.id,
            text=self.text,
            metadata=DocumentMetadata.from_index_metadata(self.metadata),
            score=self.relevance if score is None else score,
        )
