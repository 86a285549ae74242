"""
Progressive filter relaxation.

Sparse or inconsistently tagged metadata means a fully specified filter
often matches too few documents. Instead of returning an empty result,
the engine retries with successively weaker filters:

    STRICT -> CORE_CONDITIONS -> BASIC -> SUBJECT_ONLY -> UNFILTERED

Each stage keeps only the predicates on its allowed fields, dropping
fine-grained predicates (chapter, arbitrary tags) before coarse ones
(grade, then subject). `stage_filter` is a pure function of
(stage, filter), so the order can be tested without an index.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from edu_retrieval.retrieval.filters import FilterExpression, from_leaves, leaves_of
from edu_retrieval.retrieval.keyword_flags import PRIMARY_FIELD


class RelaxationStage(Enum):
    """Relaxation stages, strict to loose. Value is the allowed field set (None = all)."""

    STRICT = None
    CORE_CONDITIONS = frozenset({PRIMARY_FIELD, "subject", "grade"})
    BASIC = frozenset({"subject", "grade"})
    SUBJECT_ONLY = frozenset({"subject"})
    UNFILTERED = frozenset()

    @property
    def allowed_fields(self) -> frozenset[str] | None:
        return self.value


STAGE_ORDER: tuple[RelaxationStage, ...] = (
    RelaxationStage.STRICT,
    RelaxationStage.CORE_CONDITIONS,
    RelaxationStage.BASIC,
    RelaxationStage.SUBJECT_ONLY,
    RelaxationStage.UNFILTERED,
)


@dataclass(frozen=True)
class RelaxationStep:
    """One index query to attempt."""

    stage: RelaxationStage
    filter: FilterExpression | None


def stage_filter(
    stage: RelaxationStage,
    expr: FilterExpression | None,
) -> FilterExpression | None:
    """The filter to use at a given stage."""
    allowed = stage.allowed_fields
    if allowed is None:
        return expr
    return from_leaves(leaf for leaf in leaves_of(expr) if leaf.field in allowed)


def plan_relaxation(expr: FilterExpression | None) -> list[RelaxationStep]:
    """
    Ordered relaxation steps for a normalized filter.

    A stage that would repeat the previous stage's filter is skipped, and
    a stage that would drop every predicate is folded into the final
    UNFILTERED step.

    Example:
        >>> [s.stage.name for s in plan_relaxation(normalize_filter({"subject": "과학", "grade": 6}))]
        ['STRICT', 'SUBJECT_ONLY', 'UNFILTERED']
    """
    steps: list[RelaxationStep] = []
    for stage in STAGE_ORDER[:-1]:
        relaxed = stage_filter(stage, expr)
        if relaxed is None or (steps and steps[-1].filter == relaxed):
            continue
        steps.append(RelaxationStep(stage=stage, filter=relaxed))
    steps.append(RelaxationStep(stage=RelaxationStage.UNFILTERED, filter=None))
    return steps
