"""
Semantic Conventions for Span Attributes

Attribute keys for retrieval spans, in a custom `retrieval.` namespace
alongside the OTel `db.` keys that describe the vector index call.

Reference: https://opentelemetry.io/docs/specs/semconv/database/
"""

# ---------------------------------------------------------------------------
# DB NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

DB_SYSTEM = "db.system"  # "postgresql", "in_memory"
DB_COLLECTION_NAME = "db.collection.name"


# ---------------------------------------------------------------------------
# RETRIEVAL NAMESPACE (custom)
# ---------------------------------------------------------------------------

# Request
RETRIEVAL_JOB_ID = "retrieval.job_id"
RETRIEVAL_QUERY = "retrieval.query"
RETRIEVAL_K = "retrieval.k"
RETRIEVAL_ALPHA = "retrieval.alpha"
RETRIEVAL_LAMBDA = "retrieval.lambda"
RETRIEVAL_KEYWORD_MODE = "retrieval.keyword_mode"  # "AND", "OR"

# Execution
RETRIEVAL_STRATEGY = "retrieval.strategy"  # "hybrid", "diversity", "category_diversity"
RETRIEVAL_STAGE = "retrieval.stage"  # relaxation stage that produced the candidates
RETRIEVAL_CANDIDATE_COUNT = "retrieval.candidate_count"
RETRIEVAL_TEXT_MODE = "retrieval.text_mode"  # bool: embedding failed, lexical query used
RETRIEVAL_FALLBACK = "retrieval.fallback"  # bool

# Result
RETRIEVAL_RESULT_COUNT = "retrieval.result_count"
RETRIEVAL_TOP_SCORE = "retrieval.top_score"

# Ingestion
RETRIEVAL_INGEST_COUNT = "retrieval.ingest.count"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def search_attributes(
    strategy: str,
    collection: str,
    query: str,
    k: int,
    job_id: str | None = None,
) -> dict:
    """Create attributes dict for a search span."""
    attrs = {
        RETRIEVAL_STRATEGY: strategy,
        DB_COLLECTION_NAME: collection,
        RETRIEVAL_QUERY: query,
        RETRIEVAL_K: k,
    }
    if job_id:
        attrs[RETRIEVAL_JOB_ID] = job_id
    return attrs


def result_attributes(result_count: int, top_score: float | None = None) -> dict:
    """Create attributes dict describing a finished search."""
    attrs = {RETRIEVAL_RESULT_COUNT: result_count}
    if top_score is not None:
        attrs[RETRIEVAL_TOP_SCORE] = top_score
    return attrs
