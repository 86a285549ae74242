"""
Retrieval golden set for the seed science curriculum.

Each case names the documents a good retrieval MUST surface for a
question-generation request. They drive `optimize_alpha` and the
retrieval quality eval; the ids refer to `retrieval.seeds`.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RetrievalCase:
    """One retrieval request with its expected documents."""

    id: str
    description: str
    query: str
    expected_doc_ids: list[str]
    filter: dict[str, Any] = field(default_factory=dict)
    k: int = 3


SCIENCE_CASES = [
    RetrievalCase(
        id="science-001",
        description="Gravity concept questions for grade 6",
        query="지구가 물체를 끌어당기는 중력과 무게",
        expected_doc_ids=["sci6_gravity_01", "sci6_gravity_02"],
        filter={"subject": "과학", "grade": 6},
        k=2,
    ),
    RetrievalCase(
        id="science-002",
        description="Friction in everyday life",
        query="마찰력 빙판길 브레이크",
        expected_doc_ids=["sci6_friction_01", "sci6_friction_02"],
        filter={"subject": "과학"},
        k=2,
    ),
    RetrievalCase(
        id="science-003",
        description="Lenses and refraction",
        query="빛의 굴절과 볼록 렌즈",
        expected_doc_ids=["sci6_light_01", "sci6_lens_01"],
        filter={"subject": "과학", "grade": 6, "chapter": "빛과 렌즈"},
        k=2,
    ),
    RetrievalCase(
        id="science-004",
        description="Speed is taught in both science and math; the filter keeps science",
        query="속력 이동 거리 시간",
        expected_doc_ids=["sci6_speed_01"],
        filter={"subject": "과학"},
        k=1,
    ),
    RetrievalCase(
        id="science-005",
        description="Filter on a grade with no matching chunks relaxes to the subject",
        query="습도 측정",
        expected_doc_ids=["sci5_weather_01"],
        filter={"subject": "과학", "grade": 4},
        k=1,
    ),
]


def get_all_golden_cases() -> list[RetrievalCase]:
    """All retrieval golden cases."""
    return list(SCIENCE_CASES)


def get_case_by_id(case_id: str) -> RetrievalCase | None:
    for case in SCIENCE_CASES:
        if case.id == case_id:
            return case
    return None
