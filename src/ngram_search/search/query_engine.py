"""Rarity-guided BM25 query engine over the n-gram inverted index."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
import logging

from ngram_search.search.analyzers import Analyzer
from ngram_search.search.inverted_index import InvertedIndex, calculate_term_meta
from ngram_search.search.metrics import PhaseTimer, QueryProfile
from ngram_search.search.models import Posting, QueryResult
from ngram_search.search.stats import bm25, calculate_idf, combine_quality, coverage_ratio


logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_POOL_SIZE = 200


@dataclass(frozen=True)
class QueryTerms:
    """Analyzed query: the raw n-gram sequence and per-n-gram frequency/positions."""

    ngrams: tuple[str, ...]
    term_meta: Mapping[str, Posting]

    @property
    def unique(self) -> tuple[str, ...]:
        return tuple(self.term_meta)

    def is_empty(self) -> bool:
        return not self.term_meta


class QueryEngine:
    """Score documents for free-text queries.

    Query n-grams are walked rarest first. Each posting either folds into an
    already tracked candidate, admits a new candidate while the pool has room,
    or is skipped once ``candidate_pool_size`` candidates are tracked. The walk
    always covers every query n-gram so tracked candidates keep collecting
    score from commoner n-grams.
    """

    def __init__(
        self,
        index: InvertedIndex,
        analyzer: Analyzer,
        *,
        candidate_pool_size: int = DEFAULT_CANDIDATE_POOL_SIZE,
        k1: float = 1.2,
        b: float = 0.75,
        coverage_weight: float = 0.15,
    ) -> None:
        if candidate_pool_size < 1:
            raise ValueError(f"candidate_pool_size must be positive, got {candidate_pool_size}")
        self.index = index
        self.analyzer = analyzer
        self.candidate_pool_size = candidate_pool_size
        self.k1 = k1
        self.b = b
        self.coverage_weight = coverage_weight

    def analyze_query(self, text: str) -> QueryTerms:
        ngrams = self.analyzer(text)
        return QueryTerms(ngrams=tuple(ngrams), term_meta=calculate_term_meta(ngrams))

    def rank_terms(self, terms: QueryTerms) -> list[tuple[str, int]]:
        """Return ``(ngram, doc_frequency)`` pairs sorted rarest first."""
        doc_freqs = [(ngram, self.index.doc_frequency(ngram)) for ngram in terms.unique]
        return sorted(doc_freqs, key=lambda item: item[1])

    def query(
        self,
        text: str,
        min_quality: float = 0.0,
        *,
        on_profile: Callable[[QueryProfile], None] | None = None,
    ) -> list[QueryResult]:
        """Return results with ``quality >= min_quality``, best first."""

        profile = QueryProfile(query=text)
        timer = PhaseTimer()
        try:
            return self._query(text, min_quality, profile, timer)
        finally:
            profile.timings.total_ms = timer.total()
            if on_profile is not None:
                on_profile(profile)

    def _query(self, text: str, min_quality: float, profile: QueryProfile, timer: PhaseTimer) -> list[QueryResult]:
        if not text.strip():
            return []

        terms = self.analyze_query(text)
        profile.counts.ngram_count = len(terms.ngrams)
        profile.counts.unique_ngram_count = len(terms.term_meta)
        profile.timings.ngram_ms = timer.lap()
        if terms.is_empty():
            return []

        ranked_terms = self.rank_terms(terms)
        stats = self.index.corpus_stats
        total_docs = stats.total_documents
        avg_doc_length = stats.average_length
        profile.timings.term_stats_ms = timer.lap()

        bm25_scores: dict[str, float] = {}
        coverage: dict[str, int] = {}
        doc_lengths: dict[str, int] = {}

        for ngram, doc_freq in ranked_terms:
            entry = self.index.term_entry(ngram)
            if entry is None or not entry.postings:
                profile.counts.missing_terms += 1
                continue

            idf = calculate_idf(doc_freq, total_docs)
            for doc_id, posting in entry.postings.items():
                profile.counts.postings_visited += 1
                if doc_id not in bm25_scores:
                    if len(bm25_scores) >= self.candidate_pool_size:
                        continue
                    bm25_scores[doc_id] = 0.0
                    coverage[doc_id] = 0

                doc_length = doc_lengths.get(doc_id)
                if doc_length is None:
                    meta = self.index.doc_meta(doc_id)
                    doc_length = meta.term_count if meta is not None else 0
                    doc_lengths[doc_id] = doc_length

                weight = bm25(posting.frequency, doc_length, avg_doc_length, k1=self.k1, b=self.b)
                bm25_scores[doc_id] += idf * weight
                coverage[doc_id] += 1

        profile.counts.candidate_docs = len(bm25_scores)
        profile.timings.candidate_ms = timer.lap()

        query_term_count = len(terms.term_meta)
        results: list[QueryResult] = []
        for doc_id, score in bm25_scores.items():
            if score == 0:
                continue
            profile.counts.scored_docs += 1
            quality = combine_quality(
                score,
                coverage_ratio(coverage[doc_id], query_term_count),
                coverage_weight=self.coverage_weight,
            )
            if quality >= min_quality:
                results.append(QueryResult(id=doc_id, quality=quality))
        profile.timings.scoring_ms = timer.lap()

        results.sort(key=lambda result: result.quality, reverse=True)
        profile.counts.results_returned = len(results)
        profile.timings.sort_ms = timer.lap()

        logger.debug(
            "Query %r: %d candidates, %d results",
            text[:100],
            profile.counts.candidate_docs,
            profile.counts.results_returned,
        )
        return results
