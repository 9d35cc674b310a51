"""Fuzzy search index facade.

``FuzzySearchIndex`` is the public entry point. It owns one analyzer and
uses it both when documents are indexed and when queries are tokenized, so
query n-grams always line up with stored terms.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from typing import Any

from ngram_search.config import Settings
from ngram_search.observability.context import index_context
from ngram_search.observability.logging import configure_logging
from ngram_search.observability.metrics import INDEX_DOC_COUNT, INDEX_MUTATIONS, SEARCH_LATENCY, track_latency
from ngram_search.observability.tracing import create_span
from ngram_search.search.analyzers import Analyzer, NgramAnalyzer
from ngram_search.search.inverted_index import InvertedIndex, UpsertOutcome
from ngram_search.search.metrics import QueryProfile
from ngram_search.search.models import Document, QueryResult
from ngram_search.search.query_engine import QueryEngine
from ngram_search.search.storage import IndexStorage
from ngram_search.search.storage_factory import create_index_storage


logger = logging.getLogger(__name__)


class FuzzySearchIndex:
    """Mutable document corpus answering typo-tolerant free-text queries."""

    def __init__(
        self,
        storage: IndexStorage | None = None,
        *,
        settings: Settings | None = None,
        analyzer: Analyzer | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.analyzer = analyzer or NgramAnalyzer(self.settings.ngram_config())
        if storage is None:
            # Custom analyzers without a fingerprint cannot pin a persisted index.
            fingerprint = getattr(self.analyzer, "fingerprint", None)
            storage = create_index_storage(
                self.settings,
                tokenizer_fingerprint=fingerprint if isinstance(fingerprint, str) else None,
            )
        self.index = InvertedIndex(storage, prune_empty_terms=self.settings.prune_empty_terms)
        self.engine = QueryEngine(
            self.index,
            self.analyzer,
            candidate_pool_size=self.settings.candidate_pool_size,
            k1=self.settings.bm25_k1,
            b=self.settings.bm25_b,
            coverage_weight=self.settings.coverage_weight,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, *, setup_logging: bool = False) -> FuzzySearchIndex:
        """Build an index on the storage backend chosen by ``settings``.

        Persistent backends are tagged with the analyzer fingerprint and refuse
        to reopen under a different tokenizer configuration. With
        ``setup_logging`` the root logger is configured from ``log_level`` and
        ``log_json`` first.
        """
        settings = settings or Settings()
        if setup_logging:
            configure_logging(settings.log_level, settings.log_json)
        analyzer = NgramAnalyzer(settings.ngram_config())
        index = cls(settings=settings, analyzer=analyzer)
        logger.info(
            "Opened %s index storage for %s",
            settings.storage_backend,
            settings.index_name,
            extra={"tokenizer": analyzer.fingerprint},
        )
        return index

    @property
    def name(self) -> str:
        return self.settings.index_name

    def __len__(self) -> int:
        return len(self.index)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self.index

    def upsert(self, doc: Document) -> UpsertOutcome:
        """Index ``doc``, replacing any previous version with the same id.

        Documents whose text is empty after trimming are skipped and leave the
        index untouched.
        """
        with index_context(self.name), create_span(
            "search.upsert", attributes={"index": self.name, "doc.id": doc.id}
        ) as span:
            if not doc.text.strip():
                outcome = UpsertOutcome.SKIPPED
            else:
                outcome = self.index.upsert(doc.id, self.analyzer(doc.text))
            span.set_attribute("upsert.outcome", outcome.value)
            self._record_mutation("upsert", outcome.value)
            if outcome is UpsertOutcome.SKIPPED:
                logger.debug("Skipped document %s with no indexable text", doc.id)
            return outcome

    def upsert_many(self, docs: Iterable[Document]) -> dict[str, int]:
        """Upsert every document and count the outcomes."""
        counts = {outcome.value: 0 for outcome in UpsertOutcome}
        for doc in docs:
            counts[self.upsert(doc).value] += 1
        logger.info(
            "Bulk upsert finished: %d added, %d updated, %d unchanged, %d skipped",
            counts[UpsertOutcome.ADDED.value],
            counts[UpsertOutcome.UPDATED.value],
            counts[UpsertOutcome.UNCHANGED.value],
            counts[UpsertOutcome.SKIPPED.value],
        )
        return counts

    def remove(self, doc_id: str) -> bool:
        """Remove ``doc_id``; unknown ids return False."""
        with index_context(self.name), create_span(
            "search.remove", attributes={"index": self.name, "doc.id": doc_id}
        ) as span:
            removed = self.index.remove(doc_id)
            span.set_attribute("remove.found", removed)
            self._record_mutation("remove", "removed" if removed else "missing")
            return removed

    def query(
        self,
        text: str,
        min_quality: float | None = None,
        *,
        on_profile: Callable[[QueryProfile], None] | None = None,
    ) -> list[QueryResult]:
        """Return documents matching ``text`` with quality at or above the threshold, best first."""
        threshold = self.settings.default_min_quality if min_quality is None else min_quality
        with index_context(self.name), create_span(
            "search.query", attributes={"index": self.name, "query.length": len(text)}
        ) as span, track_latency(SEARCH_LATENCY, index=self.name):
            results = self.engine.query(text, threshold, on_profile=on_profile)
            span.set_attribute("query.results", len(results))
            logger.debug("Query returned %d results", len(results))
            return results

    def stats(self) -> dict[str, Any]:
        corpus = self.index.corpus_stats
        return {
            "index": self.name,
            "documents": corpus.total_documents,
            "terms": sum(1 for _ in self.index.storage.iter_terms()),
            "total_term_count": corpus.total_term_count,
            "average_length": corpus.average_length,
        }

    def close(self) -> None:
        close = getattr(self.index.storage, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> FuzzySearchIndex:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _record_mutation(self, operation: str, outcome: str) -> None:
        INDEX_MUTATIONS.labels(index=self.name, operation=operation, outcome=outcome).inc()
        INDEX_DOC_COUNT.labels(index=self.name).set(len(self.index))
