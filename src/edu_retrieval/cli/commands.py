"""
CLI commands - entry points for retrieval and tuning.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Build the engine (in-memory index seeded with the curriculum corpus
   unless --use-postgres)
4. Run and print results
5. Return exit code
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from edu_retrieval.config import EngineConfig
from edu_retrieval.embeddings import get_embedding_provider
from edu_retrieval.monitoring import RetrievalMonitor, get_event_store
from edu_retrieval.observability import init_tracing, shutdown_tracing
from edu_retrieval.retrieval.document import Document
from edu_retrieval.retrieval.engine import CategoryQuery, RetrievalEngine
from edu_retrieval.retrieval.keyword_flags import KeywordMode
from edu_retrieval.retrieval.seeds import DEFAULT_COLLECTION, seed_index
from edu_retrieval.retrieval.store import VectorIndexConfig, get_vector_index

logger = logging.getLogger(__name__)


def _load_env() -> None:
    """Load environment variables from .env file."""
    load_dotenv()


def _common_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--collection", default=DEFAULT_COLLECTION, help="Collection name")
    parser.add_argument("--use-postgres", action="store_true", help="Use the pgvector index (DATABASE_URL)")
    parser.add_argument("--mock-embeddings", action="store_true", help="Use deterministic mock embeddings")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_engine(args: argparse.Namespace, seed: bool = True) -> RetrievalEngine:
    config = EngineConfig.from_env()
    index_config = VectorIndexConfig.from_env()
    index_config.timeout_s = config.index_timeout_s
    index = get_vector_index(use_postgres=args.use_postgres, config=index_config)
    if args.use_postgres:
        index.create_schema()
    embeddings = get_embedding_provider(
        use_mock=args.mock_embeddings,
        timeout=config.embedding_timeout_s,
        batch_size=config.embedding_batch_size,
        batch_delay_s=config.embedding_batch_delay_s,
    )
    engine = RetrievalEngine(index, embeddings, config, monitor=RetrievalMonitor(get_event_store()))

    # The in-memory index starts empty on every run
    if seed and not args.use_postgres:
        seed_index(engine, args.collection)
    return engine


def _print_documents(documents: list[Document], as_json: bool) -> None:
    if as_json:
        print(json.dumps([doc.to_dict() for doc in documents], ensure_ascii=False, indent=2))
        return
    if not documents:
        print("No documents retrieved.")
        return
    for position, doc in enumerate(documents, start=1):
        score = f"{doc.score:.3f}" if doc.score is not None else "  -  "
        print(f"{position:2d}. [{score}] {doc.id} ({doc.metadata.subject}/{doc.metadata.grade}/{doc.metadata.chapter})")
        print(f"      {doc.text[:100]}")


def _parse_filter(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise SystemExit(f"--filter must be a JSON object: {e}")


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


def run_ingest_cli() -> int:
    """Ingest documents from a JSON file (list of {id, text, metadata})."""
    parser = _common_parser("Ingest documents into a collection")
    parser.add_argument("path", nargs="?", help="JSON file with documents (seed corpus if omitted)")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args, seed=False)
    if args.path:
        documents = json.loads(Path(args.path).read_text(encoding="utf-8"))
        written = engine.ingest(args.collection, documents)
    else:
        written = seed_index(engine, args.collection)

    print(f"Ingested {written} documents into '{args.collection}'")
    return 0


def run_search_cli() -> int:
    """Hybrid search."""
    parser = _common_parser("Hybrid (vector + keyword) search")
    parser.add_argument("query", help="Search query")
    parser.add_argument("-k", type=int, default=5, help="Number of results")
    parser.add_argument("--alpha", type=float, default=None, help="Keyword weight in [0, 1]")
    parser.add_argument("--filter", default=None, help='Metadata filter as JSON, e.g. \'{"grade": 6}\'')
    parser.add_argument("--keywords", default=None, help="Comma-separated keyword flags")
    parser.add_argument("--mode", choices=["and", "or"], default="or", help="Keyword mode")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args)
    keywords = [kw for kw in (args.keywords or "").split(",") if kw.strip()]
    documents = engine.hybrid_search(
        args.collection,
        args.query,
        filter=_parse_filter(args.filter),
        k=args.k,
        alpha=args.alpha,
        keywords=keywords or None,
        keyword_mode=KeywordMode(args.mode.upper()),
    )
    _print_documents(documents, args.json)
    return 0 if documents else 1


def run_diversity_cli() -> int:
    """MMR diversity search."""
    parser = _common_parser("Diversity (MMR) search")
    parser.add_argument("query", help="Search query")
    parser.add_argument("-k", type=int, default=5, help="Number of results")
    parser.add_argument("--lambda", dest="lambda_", type=float, default=None, help="Relevance weight in [0, 1]")
    parser.add_argument("--filter", default=None, help="Metadata filter as JSON")
    parser.add_argument("--exclude", default="", help="Comma-separated document ids to exclude")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args)
    documents = engine.diversity_search(
        args.collection,
        args.query,
        k=args.k,
        lambda_=args.lambda_,
        exclude_ids=[doc_id for doc_id in args.exclude.split(",") if doc_id],
        filter=_parse_filter(args.filter),
    )
    _print_documents(documents, args.json)
    return 0 if documents else 1


def _parse_category(raw: str) -> CategoryQuery:
    name, weight, query = (raw.split(":", 2) + ["", ""])[:3]
    if not query:
        raise SystemExit(f"--category must look like name:weight:query, got {raw!r}")
    try:
        return CategoryQuery(name=name, query=query, weight=float(weight))
    except ValueError:
        raise SystemExit(f"Category weight must be a number, got {weight!r}")


def run_categories_cli() -> int:
    """Category-weighted diversity search."""
    parser = _common_parser("Category-weighted diversity search")
    parser.add_argument(
        "--category",
        action="append",
        required=True,
        help="name:weight:query (repeatable)",
    )
    parser.add_argument("-k", type=int, default=9, help="Number of results")
    parser.add_argument("--filter", default=None, help="Metadata filter as JSON")
    parser.add_argument("--workers", type=int, default=1, help="Parallel candidate fetches")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args)
    documents = engine.category_diversity_search(
        args.collection,
        [_parse_category(raw) for raw in args.category],
        k=args.k,
        filter=_parse_filter(args.filter),
        max_workers=args.workers,
    )
    _print_documents(documents, args.json)
    return 0 if documents else 1


def run_eval_cli() -> int:
    """Retrieval quality gate over the golden set."""
    from edu_retrieval.evals import run_retrieval_eval

    parser = _common_parser("Run retrieval quality eval")
    parser.add_argument("--alpha", type=float, default=None, help="Keyword weight in [0, 1]")
    parser.add_argument("--threshold", type=float, default=0.8, help="Minimum F1 per case")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    print("=" * 60)
    print("RETRIEVAL QUALITY EVAL")
    print("=" * 60)

    engine = _build_engine(args)
    report = run_retrieval_eval(engine, args.collection, alpha=args.alpha, threshold=args.threshold)

    for result in report.results:
        status = "PASS" if result.passed else "FAIL"
        print(f"  [{status}] {result.case_id} (F1: {result.metrics.f1_score:.2f})")

    print(f"\nAverage F1: {report.avg_f1:.2f} (alpha={report.alpha})")
    print(f"Threshold: {report.threshold}")
    print(f"Passed: {report.passed_cases}/{report.total_cases}")

    if report.all_passed:
        print("\n>>> RETRIEVAL EVAL GATE: PASSED <<<")
        return 0
    print("\n>>> RETRIEVAL EVAL GATE: FAILED <<<")
    return 1


def run_optimize_alpha_cli() -> int:
    """Grid-search alpha over the golden set."""
    from edu_retrieval.evals import DEFAULT_ALPHA_GRID, optimize_alpha

    parser = _common_parser("Find the hybrid weight alpha with the best mean F1")
    parser.add_argument(
        "--grid",
        default=",".join(str(a) for a in DEFAULT_ALPHA_GRID),
        help="Comma-separated alpha values",
    )
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args)
    grid = [float(value) for value in args.grid.split(",") if value.strip()]
    result = optimize_alpha(engine, args.collection, alpha_grid=grid)

    if args.json:
        print(json.dumps(
            {"best_alpha": result.best_alpha, "best_f1": result.best_f1,
             "scores": {str(a): f1 for a, f1 in result.scores.items()}},
            indent=2,
        ))
    else:
        for alpha, f1 in result.scores.items():
            marker = " <- best" if alpha == result.best_alpha else ""
            print(f"  alpha={alpha:.2f}  F1={f1:.3f}{marker}")
    return 0


def run_metrics_cli() -> int:
    """Summarise logged retrieval events."""
    parser = argparse.ArgumentParser(description="Summarise recent retrievals")
    parser.add_argument("--hours", type=float, default=24, help="Time window")
    parser.add_argument("--file", default=None, help="Event file (default logs/retrieval-metrics.json)")
    args = parser.parse_args()

    summary = RetrievalMonitor(get_event_store(file_path=args.file)).summary(hours=args.hours)
    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return 0


def run_sample_cli() -> int:
    """Print stored metadata of a few documents."""
    parser = _common_parser("Sample stored metadata")
    parser.add_argument("-n", type=int, default=5, help="Number of documents")
    args = parser.parse_args()
    _configure_logging(args.verbose)

    engine = _build_engine(args)
    for metadata in engine.sample_metadata(args.collection, n=args.n):
        print(json.dumps(metadata, ensure_ascii=False, sort_keys=True))
    return 0


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        edu-retrieval ingest [docs.json]
        edu-retrieval search "중력" --filter '{"grade": 6}'
        edu-retrieval diversity "힘과 운동" -k 5
        edu-retrieval categories --category gravity:2:중력 --category friction:1:마찰력
        edu-retrieval eval
        edu-retrieval optimize-alpha
        edu-retrieval metrics --hours 24
        edu-retrieval sample -n 3
    """
    _load_env()

    parser = argparse.ArgumentParser(
        description="Hybrid retrieval engine for question generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  ingest          Embed and store documents
  search          Hybrid (vector + keyword) search
  diversity       Diversity (MMR) search
  categories      Category-weighted diversity search
  eval            Retrieval quality gate over the golden set
  optimize-alpha  Grid-search the hybrid weight
  metrics         Summarise logged retrievals
  sample          Print stored metadata of a few documents

Without --use-postgres, commands run against an in-memory index seeded
with the sample science curriculum.
        """,
    )
    parser.add_argument(
        "command",
        choices=["ingest", "search", "diversity", "categories", "eval", "optimize-alpha", "metrics", "sample"],
        help="Command to run",
    )

    # Parse just the command first
    args, remaining = parser.parse_known_args()

    commands = {
        "ingest": run_ingest_cli,
        "search": run_search_cli,
        "diversity": run_diversity_cli,
        "categories": run_categories_cli,
        "eval": run_eval_cli,
        "optimize-alpha": run_optimize_alpha_cli,
        "metrics": run_metrics_cli,
        "sample": run_sample_cli,
    }

    # Re-inject remaining args for the subcommand
    sys.argv = [sys.argv[0]] + remaining

    init_tracing()
    try:
        return commands[args.command]()
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
