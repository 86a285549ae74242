"""
CLI module - command-line interface.

Provides entry points for:
- Ingesting documents
- Hybrid, diversity and category searches
- The retrieval quality gate and alpha tuning
- Retrieval metrics
"""

from edu_retrieval.cli.commands import (
    main,
    run_ingest_cli,
    run_search_cli,
    run_diversity_cli,
    run_categories_cli,
    run_eval_cli,
    run_optimize_alpha_cli,
    run_metrics_cli,
    run_sample_cli,
)

__all__ = [
    "main",
    "run_ingest_cli",
    "run_search_cli",
    "run_diversity_cli",
    "run_categories_cli",
    "run_eval_cli",
    "run_optimize_alpha_cli",
    "run_metrics_cli",
    "run_sample_cli",
]
