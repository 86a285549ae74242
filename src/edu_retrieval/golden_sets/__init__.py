"""
Golden Sets Package

Retrieval cases with the documents each request must surface.

Example:
    from edu_retrieval.golden_sets import RetrievalCase, get_all_golden_cases
"""

from edu_retrieval.golden_sets.science_cases import (
    RetrievalCase,
    SCIENCE_CASES,
    get_all_golden_cases,
    get_case_by_id,
)

__all__ = [
    "RetrievalCase",
    "SCIENCE_CASES",
    "get_all_golden_cases",
    "get_case_by_id",
]
