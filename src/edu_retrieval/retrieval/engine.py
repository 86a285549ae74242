"""
RetrievalEngine - the public retrieval API consumed by question generation.

Every search follows the same pipeline:

    normalize filter -> relaxation loop (one index query per stage)
        -> hybrid scoring -> (MMR selection) -> results

and degrades instead of failing: an index error skips a stage, an
embedding failure switches to a lexical text query, and a search that
ends with no candidates returns the fallback sample (possibly empty).
Only programmer errors (bad collection name, k < 1, weights outside
[0, 1]) raise, and they raise before any I/O.

USAGE:
------
engine = RetrievalEngine(get_vector_index(), get_embedding_provider(use_mock=True))
engine.ingest("grade6_science", documents)

session = SearchSession()
docs = engine.hybrid_search(
    "grade6_science", "물체에 작용하는 중력",
    filter={"subject": "과학", "grade": 6},
    keywords=["중력", "마찰력"], keyword_mode=KeywordMode.AND,
    session=session,
)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np

from edu_retrieval.config import EngineConfig
from edu_retrieval.core import (
    EmbeddingError,
    EmbeddingProvider,
    IndexUnavailableError,
    InvalidArgumentError,
    QueryResult,
    VectorIndex,
)
from edu_retrieval.monitoring import RetrievalMonitor
from edu_retrieval.observability import TracerProtocol, get_tracer
from edu_retrieval.observability.attributes import (
    RETRIEVAL_ALPHA,
    RETRIEVAL_CANDIDATE_COUNT,
    RETRIEVAL_FALLBACK,
    RETRIEVAL_INGEST_COUNT,
    RETRIEVAL_KEYWORD_MODE,
    RETRIEVAL_LAMBDA,
    RETRIEVAL_STAGE,
    RETRIEVAL_TEXT_MODE,
    DB_COLLECTION_NAME,
    result_attributes,
    search_attributes,
)
from edu_retrieval.retrieval.document import Candidate, Document, DocumentMetadata
from edu_retrieval.retrieval.filters import FilterExpression, combine, normalize_filter, to_where
from edu_retrieval.retrieval.keyword_flags import (
    FLAG_PREFIX,
    PRIMARY_FIELD,
    KeywordMode,
    keyword_filter,
    normalize_keywords,
)
from edu_retrieval.retrieval.mmr import category_quotas, drop_near_duplicates, select_diverse
from edu_retrieval.retrieval.relaxation import STAGE_ORDER, RelaxationStage, plan_relaxation
from edu_retrieval.retrieval.scoring import check_unit_interval, score_candidates
from edu_retrieval.retrieval.session import SearchSession
from edu_retrieval.retrieval.store import validate_collection_name

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# REQUEST / INTERMEDIATE TYPES
# ---------------------------------------------------------------------------


@dataclass
class CategoryQuery:
    """One category of a category-weighted diversity search."""

    name: str
    query: str
    weight: float = 1.0
    filter: Any = None


@dataclass
class CandidatePool:
    """Candidates produced by the relaxation loop."""

    candidates: list[Candidate] = field(default_factory=list)
    stage: RelaxationStage | None = None
    text_mode: bool = False

    def __bool__(self) -> bool:
        return bool(self.candidates)


def _validate_k(k: Any) -> int:
    if isinstance(k, bool) or not isinstance(k, int) or k < 1:
        raise InvalidArgumentError(f"k must be a positive integer, got {k!r}")
    return k


def _candidates_from(result: QueryResult, excluded: Iterable[str] = ()) -> list[Candidate]:
    excluded = set(excluded)
    return [
        Candidate(id=doc_id, text=text or "", metadata=dict(metadata or {}), distance=float(distance))
        for doc_id, text, metadata, distance in zip(
            result.ids, result.documents, result.metadatas, result.distances
        )
        if doc_id not in excluded
    ]


# ---------------------------------------------------------------------------
# ENGINE
# ---------------------------------------------------------------------------


class RetrievalEngine:
    """
    Hybrid retrieval and diversity ranking over a VectorIndex.

    The index, embedding provider, monitor and tracer are injected; the
    engine holds no per-job state (pass a SearchSession for that) and is
    safe to share between threads.
    """

    def __init__(
        self,
        index: VectorIndex,
        embeddings: EmbeddingProvider,
        config: EngineConfig | None = None,
        monitor: RetrievalMonitor | None = None,
        tracer: TracerProtocol | None = None,
    ):
        self.index = index
        self.embeddings = embeddings
        self.config = config or EngineConfig()
        self.monitor = monitor
        self.tracer = tracer or get_tracer()

    # -----------------------------------------------------------------------
    # Candidate generation
    # -----------------------------------------------------------------------

    def _embed_query(self, query: str) -> np.ndarray | None:
        try:
            return self.embeddings.embed(query)
        except Exception as e:
            logger.warning(f"Query embedding failed, using text query instead: {e}")
            return None

    def _fetch_candidates(
        self,
        collection: str,
        query: str,
        expr: FilterExpression | None,
        size: int,
        excluded: Iterable[str] = (),
    ) -> CandidatePool:
        """Embed the query and run the relaxation loop for it."""
        return self._relax(collection, query, self._embed_query(query), expr, size, excluded)

    def _relax(
        self,
        collection: str,
        query: str,
        embedding: np.ndarray | None,
        expr: FilterExpression | None,
        size: int,
        excluded: Iterable[str] = (),
        required: FilterExpression | None = None,
    ) -> CandidatePool:
        """
        Run the relaxation loop and return the first sufficient stage.

        A stage is sufficient when it yields min(size, min_candidates)
        candidates, or (accept_exhausted_stage) when it is non-empty and
        the index returned fewer rows than requested. `required` is
        joined to every stage's filter and is never relaxed.
        """
        excluded = set(excluded)
        text_mode = embedding is None
        requested = size + len(excluded)
        threshold = min(size, self.config.min_candidates)

        best = CandidatePool(text_mode=text_mode)
        for step in plan_relaxation(expr):
            where = to_where(combine(step.filter, required))
            try:
                if text_mode:
                    result = self.index.query(collection, text=query, k=requested, where=where)
                else:
                    result = self.index.query(collection, embedding=embedding, k=requested, where=where)
            except IndexUnavailableError as e:
                # Later stages would hit the same dead index
                logger.error(f"Vector index unavailable at stage {step.stage.name}: {e}")
                return best
            except Exception as e:
                logger.error(f"Index query failed at stage {step.stage.name} (where={where}): {e}")
                continue

            candidates = _candidates_from(result, excluded)
            logger.debug(
                f"Stage {step.stage.name}: {len(candidates)} candidates "
                f"({len(result)}/{requested} rows, where={where})"
            )
            if not candidates:
                continue

            best = CandidatePool(candidates=candidates, stage=step.stage, text_mode=text_mode)
            exhausted = self.config.accept_exhausted_stage and len(result) < requested
            if len(candidates) >= threshold or exhausted:
                break
            logger.info(
                f"Stage {step.stage.name} gave {len(candidates)} candidates "
                f"(< {threshold}), relaxing filter"
            )

        return best

    # -----------------------------------------------------------------------
    # Fallback
    # -----------------------------------------------------------------------

    def _fallback(self, collection: str, k: int, excluded: Iterable[str] = ()) -> list[Document]:
        excluded = set(excluded)
        try:
            result = self.index.get(collection, limit=k + len(excluded))
        except Exception as e:
            logger.error(f"Fallback retrieval failed for '{collection}': {e}")
            return []

        documents = [
            Document(
                id=doc_id,
                text=text or "",
                metadata=DocumentMetadata.from_index_metadata(metadata),
            )
            for doc_id, text, metadata in zip(result.ids, result.documents, result.metadatas)
            if doc_id not in excluded
        ][:k]
        logger.warning(f"Fallback retrieval returned {len(documents)} unranked documents from '{collection}'")
        return documents

    def fallback(self, collection: str, k: int = 10) -> list[Document]:
        """Up to k arbitrary documents from the collection. Never raises for index errors."""
        validate_collection_name(collection)
        _validate_k(k)
        return self._fallback(collection, k)

    # -----------------------------------------------------------------------
    # Session / monitoring helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _claim(
        session: SearchSession | None,
        extra_excluded: Iterable[str],
        select: Callable[[set[str]], list[Document]],
    ) -> list[Document]:
        """Select against the current exclusions and record the picks atomically."""
        if session is None:
            return select(set(extra_excluded))
        with session.lock:
            documents = select(session.excluded(extra_excluded))
            session.mark_used(doc.id for doc in documents)
            return documents

    def _record(
        self,
        session: SearchSession | None,
        collection: str,
        query: str,
        strategy: str,
        documents: Sequence[Document],
    ) -> None:
        if self.monitor is None:
            return
        top_score = documents[0].score if documents else None
        try:
            self.monitor.log_retrieval(
                job_id=session.job_id if session else None,
                query=query,
                collection=collection,
                documents_retrieved=len(documents),
                strategy=strategy,
                top_score=top_score,
            )
        except Exception as e:
            logger.warning(f"Could not record retrieval event: {e}")

    # -----------------------------------------------------------------------
    # Hybrid search
    # -----------------------------------------------------------------------

    def _fetch_keyword_candidates(
        self,
        collection: str,
        query: str,
        expr: FilterExpression | None,
        size: int,
        excluded: set[str],
        tokens: list[str],
        mode: KeywordMode,
    ) -> tuple[CandidatePool, KeywordMode]:
        """
        Candidates carrying the requested keyword flags.

        The flag predicates are pinned through relaxation, so a document
        qualifies by its flags whatever its primary keyword is. AND that
        matches nothing is downgraded to OR; OR that matches nothing keeps
        the plain candidates.
        """
        embedding = self._embed_query(query)

        if mode is KeywordMode.AND:
            pool = self._relax(
                collection, query, embedding, expr, size, excluded,
                required=keyword_filter(tokens, KeywordMode.AND),
            )
            if pool:
                return pool, KeywordMode.AND
            logger.warning(f"No candidate carries all keywords {tokens}, downgrading AND to OR")

        merged: dict[str, Candidate] = {}
        stages: list[RelaxationStage] = []
        for token in tokens:
            pool = self._relax(
                collection, query, embedding, expr, size, excluded,
                required=keyword_filter([token], KeywordMode.AND),
            )
            if not pool:
                continue
            stages.append(pool.stage)
            for candidate in pool.candidates:
                seen = merged.get(candidate.id)
                if seen is None or candidate.distance < seen.distance:
                    merged[candidate.id] = candidate

        if merged:
            loosest = max(stages, key=STAGE_ORDER.index)
            return CandidatePool(
                candidates=list(merged.values()), stage=loosest, text_mode=embedding is None
            ), KeywordMode.OR

        logger.warning(f"No candidate carries any of keywords {tokens}, keeping all candidates")
        return self._relax(collection, query, embedding, expr, size, excluded), KeywordMode.OR

    def hybrid_search(
        self,
        collection: str,
        query: str,
        filter: Any = None,
        k: int = 10,
        alpha: float | None = None,
        keywords: Iterable[str] | None = None,
        keyword_mode: KeywordMode | str = KeywordMode.OR,
        session: SearchSession | None = None,
    ) -> list[Document]:
        """
        Top-k documents by combined keyword/vector score.

        Args:
            collection: Collection to search
            query: Free-text query
            filter: Metadata constraints (loose mapping or FilterExpression)
            k: Number of results wanted
            alpha: Keyword weight in [0, 1] (default from config)
            keywords: Keyword flags the results should carry
            keyword_mode: AND (every keyword, downgraded to OR when nothing
                matches) or OR (any keyword)
            session: Per-job session; used documents are excluded and picks recorded

        Returns:
            Up to k documents, best first. Empty when nothing is retrievable.
        """
        validate_collection_name(collection)
        _validate_k(k)
        alpha = check_unit_interval("alpha", self.config.alpha if alpha is None else alpha)
        try:
            mode = KeywordMode(keyword_mode)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown keyword mode {keyword_mode!r}") from e
        tokens = normalize_keywords(keywords)
        query = query or ""

        strategy = f"hybrid_keyword_{mode.value.lower()}" if tokens else "hybrid"
        attributes = search_attributes(strategy, collection, query, k, session.job_id if session else None)
        attributes[RETRIEVAL_ALPHA] = alpha
        if tokens:
            attributes[RETRIEVAL_KEYWORD_MODE] = mode.value

        with self.tracer.start_span("retrieval.hybrid_search", attributes=attributes) as span:
            expr = normalize_filter(filter)
            size = self.config.candidate_size(k)

            def select(excluded: set[str]) -> list[Document]:
                if not query.strip():
                    logger.info("Blank query, returning fallback sample")
                    return self._fallback(collection, k, excluded)

                if tokens:
                    pool, used_mode = self._fetch_keyword_candidates(
                        collection, query, expr, size, excluded, tokens, mode
                    )
                    span.set_attribute(RETRIEVAL_KEYWORD_MODE, used_mode.value)
                else:
                    pool = self._fetch_candidates(collection, query, expr, size, excluded)
                span.set_attribute(RETRIEVAL_TEXT_MODE, pool.text_mode)
                if not pool:
                    span.set_attribute(RETRIEVAL_FALLBACK, True)
                    return self._fallback(collection, k, excluded)
                span.set_attribute(RETRIEVAL_STAGE, pool.stage.name)
                span.set_attribute(RETRIEVAL_CANDIDATE_COUNT, len(pool.candidates))

                effective_alpha = 1.0 if pool.text_mode else alpha
                scored = score_candidates(pool.candidates, query, effective_alpha, self.config.scoring)
                if not scored:
                    span.set_attribute(RETRIEVAL_FALLBACK, True)
                    return self._fallback(collection, k, excluded)
                return [candidate.to_document() for candidate in scored[:k]]

            documents = self._claim(session, (), select)
            top_score = documents[0].score if documents else None
            for key, value in result_attributes(len(documents), top_score).items():
                span.set_attribute(key, value)

        logger.info(f"Hybrid search on '{collection}' returned {len(documents)}/{k} documents")
        self._record(session, collection, query, strategy, documents)
        return documents

    # -----------------------------------------------------------------------
    # Diversity search
    # -----------------------------------------------------------------------

    def _rank_for_diversity(
        self,
        pool: CandidatePool,
        query: str,
        alpha: float | None,
    ) -> list[Candidate]:
        """Relevance for MMR: vector relevance, or hybrid scores when alpha is given."""
        candidates = pool.candidates
        if pool.text_mode:
            candidates = score_candidates(candidates, query, 1.0, self.config.scoring)
        elif alpha is not None:
            candidates = score_candidates(candidates, query, alpha, self.config.scoring)

        threshold = self.config.near_duplicate_threshold
        if threshold < 1.0:
            before = len(candidates)
            candidates = drop_near_duplicates(candidates, threshold)
            if len(candidates) < before:
                logger.debug(f"Collapsed {before - len(candidates)} near-duplicate candidates")
        return candidates

    def diversity_search(
        self,
        collection: str,
        query: str,
        k: int = 10,
        lambda_: float | None = None,
        exclude_ids: Iterable[str] = (),
        filter: Any = None,
        alpha: float | None = None,
        session: SearchSession | None = None,
    ) -> list[Document]:
        """
        Up to k documents balancing relevance and mutual diversity (MMR).

        Args:
            collection: Collection to search
            query: Free-text query
            k: Number of results wanted
            lambda_: Relevance weight in [0, 1] (default from config)
            exclude_ids: Document ids that must not be returned
            filter: Metadata constraints
            alpha: When given, rank candidates by hybrid score before MMR
            session: Per-job session; used documents are excluded and picks recorded

        Returns:
            Selected documents in pick order.
        """
        validate_collection_name(collection)
        _validate_k(k)
        lambda_ = check_unit_interval("lambda", self.config.mmr_lambda if lambda_ is None else lambda_)
        if alpha is not None:
            check_unit_interval("alpha", alpha)
        exclude_ids = list(exclude_ids)
        query = query or ""

        attributes = search_attributes("diversity", collection, query, k, session.job_id if session else None)
        attributes[RETRIEVAL_LAMBDA] = lambda_

        with self.tracer.start_span("retrieval.diversity_search", attributes=attributes) as span:
            expr = normalize_filter(filter)
            size = self.config.diversity_candidate_size(k)

            def select(excluded: set[str]) -> list[Document]:
                if not query.strip():
                    return self._fallback(collection, k, excluded)
                pool = self._fetch_candidates(collection, query, expr, size, excluded)
                if not pool:
                    span.set_attribute(RETRIEVAL_FALLBACK, True)
                    return self._fallback(collection, k, excluded)
                span.set_attribute(RETRIEVAL_STAGE, pool.stage.name)
                ranked = self._rank_for_diversity(pool, query, alpha)
                picks = select_diverse(ranked, k, lambda_, excluded)
                return [candidate.to_document() for candidate in picks]

            documents = self._claim(session, exclude_ids, select)
            for key, value in result_attributes(len(documents)).items():
                span.set_attribute(key, value)

        logger.info(
            f"Diversity search on '{collection}' selected {len(documents)}/{k} documents "
            f"(lambda={lambda_}, excluded={len(exclude_ids)})"
        )
        self._record(session, collection, query, "diversity", documents)
        return documents

    def category_diversity_search(
        self,
        collection: str,
        queries: Sequence[CategoryQuery],
        k: int = 10,
        exclude_ids: Iterable[str] = (),
        filter: Any = None,
        session: SearchSession | None = None,
        max_workers: int = 1,
    ) -> list[Document]:
        """
        Diversity search per category with weighted quotas, no id repeated.

        Each category gets ceil(k * weight / total_weight) results, selected
        with `category_lambda`; results are concatenated in category order
        and truncated to k. Candidate pools are fetched up front (in parallel
        when max_workers > 1); selection runs per category, in order, with
        every earlier pick excluded.
        """
        validate_collection_name(collection)
        _validate_k(k)
        if not queries:
            return []
        quotas = category_quotas(k, [category.weight for category in queries])
        lambda_ = self.config.category_lambda
        exclude_ids = list(exclude_ids)

        combined_query = " | ".join(category.query for category in queries)
        attributes = search_attributes(
            "category_diversity", collection, combined_query, k, session.job_id if session else None
        )
        attributes[RETRIEVAL_LAMBDA] = lambda_

        with self.tracer.start_span("retrieval.category_diversity_search", attributes=attributes) as span:
            base = normalize_filter(filter)
            initial_excluded = set(exclude_ids) | (session.used_ids if session else set())

            def fetch(category: CategoryQuery, quota: int) -> CandidatePool:
                if not category.query.strip():
                    return CandidatePool()
                expr = combine(base, normalize_filter(category.filter))
                size = self.config.diversity_candidate_size(quota)
                return self._fetch_candidates(collection, category.query, expr, size, initial_excluded)

            if max_workers > 1:
                with ThreadPoolExecutor(max_workers=max_workers) as executor:
                    pools = list(executor.map(fetch, queries, quotas))
            else:
                pools = [fetch(category, quota) for category, quota in zip(queries, quotas)]

            def select(excluded: set[str]) -> list[Document]:
                results: list[Document] = []
                for category, quota, pool in zip(queries, quotas, pools):
                    remaining = k - len(results)
                    if remaining <= 0:
                        break
                    ranked = self._rank_for_diversity(pool, category.query, None) if pool else []
                    picks = select_diverse(ranked, min(quota, remaining), lambda_, excluded)
                    logger.info(f"Category '{category.name}': {len(picks)}/{quota} documents")
                    for candidate in picks:
                        excluded.add(candidate.id)
                        results.append(candidate.to_document())
                return results

            documents = self._claim(session, exclude_ids, select)
            if not documents:
                span.set_attribute(RETRIEVAL_FALLBACK, True)
                documents = self._claim(
                    session, exclude_ids, lambda excluded: self._fallback(collection, k, excluded)
                )
            for key, value in result_attributes(len(documents)).items():
                span.set_attribute(key, value)

        logger.info(f"Category diversity search on '{collection}' returned {len(documents)}/{k} documents")
        self._record(session, collection, combined_query, "category_diversity", documents)
        return documents

    # -----------------------------------------------------------------------
    # Ingestion and debugging
    # -----------------------------------------------------------------------

    @staticmethod
    def _coerce_document(item: Document | Mapping[str, Any]) -> Document:
        if isinstance(item, Document):
            return item
        if not isinstance(item, Mapping) or not item.get("id"):
            raise InvalidArgumentError(f"Documents need an id: {item!r}")
        metadata = item.get("metadata") or {}
        if not isinstance(metadata, DocumentMetadata):
            known = {name: metadata.get(name) for name in ("subject", "grade", "chapter", "keywords")}
            extra = {key: value for key, value in metadata.items() if key not in known}
            metadata = DocumentMetadata(**known, extra=extra)
        return Document(id=str(item["id"]), text=item.get("text") or "", metadata=metadata)

    def ingest(self, collection: str, documents: Iterable[Document | Mapping[str, Any]]) -> int:
        """
        Embed and store documents; returns the number written.

        Texts are embedded in chunks of `embedding_batch_size` with
        `embedding_batch_delay_s` between chunks, and each chunk is written
        before the next is embedded. An embedding failure raises
        EmbeddingError; chunks already written stay in the index.
        """
        validate_collection_name(collection)
        docs = [self._coerce_document(item) for item in documents]
        blank = [doc.id for doc in docs if not doc.text.strip()]
        if blank:
            logger.warning(f"Skipping {len(blank)} documents with empty text: {blank[:5]}")
            docs = [doc for doc in docs if doc.text.strip()]

        batch_size = self.config.embedding_batch_size
        add_size = self.config.add_batch_size
        written = 0

        with self.tracer.start_span("retrieval.ingest", attributes={DB_COLLECTION_NAME: collection}) as span:
            for start in range(0, len(docs), batch_size):
                if start and self.config.embedding_batch_delay_s:
                    time.sleep(self.config.embedding_batch_delay_s)
                chunk = docs[start:start + batch_size]

                try:
                    vectors = self.embeddings.embed_batch([doc.text for doc in chunk])
                except Exception as e:
                    logger.error(f"Embedding failed after {written}/{len(docs)} documents were written")
                    span.record_exception(e)
                    span.set_status("error", f"embedding failed after {written} documents")
                    if isinstance(e, EmbeddingError):
                        raise
                    raise EmbeddingError(f"Embedding failed: {e}") from e
                if len(vectors) != len(chunk):
                    raise EmbeddingError(f"Expected {len(chunk)} embeddings, got {len(vectors)}")

                for sub in range(0, len(chunk), add_size):
                    part = chunk[sub:sub + add_size]
                    self.index.add(
                        collection,
                        ids=[doc.id for doc in part],
                        documents=[doc.text for doc in part],
                        metadatas=[doc.metadata.to_index_metadata() for doc in part],
                        embeddings=vectors[sub:sub + add_size],
                    )
                written += len(chunk)
                logger.info(f"Ingested {written}/{len(docs)} documents into '{collection}'")

            span.set_attribute(RETRIEVAL_INGEST_COUNT, written)
        return written

    def sample_metadata(self, collection: str, n: int = 5) -> list[dict[str, Any]]:
        """
        Stored metadata of up to n documents, for checking how fields and
        keyword flags actually landed in the index.
        """
        validate_collection_name(collection)
        _validate_k(n)
        try:
            result = self.index.get(collection, limit=n)
        except Exception as e:
            logger.error(f"Metadata sampling failed for '{collection}': {e}")
            return []

        for position, metadata in enumerate(result.metadatas, start=1):
            keyword_fields = {
                key: value
                for key, value in metadata.items()
                if key == PRIMARY_FIELD or key.startswith(FLAG_PREFIX)
            }
            logger.debug(f"Sample {position}: {metadata}")
            if keyword_fields:
                logger.debug(f"Sample {position} keyword fields: {keyword_fields}")
        return [dict(metadata) for metadata in result.metadatas]
