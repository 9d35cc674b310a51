"""Per-query profiling for the n-gram query engine."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import math
import time


@dataclass
class QueryTimings:
    """Wall time in milliseconds spent in each query phase."""

    ngram_ms: float = 0.0
    term_stats_ms: float = 0.0
    candidate_ms: float = 0.0
    scoring_ms: float = 0.0
    sort_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class QueryCounters:
    """Work counters for a single query."""

    ngram_count: int = 0
    unique_ngram_count: int = 0
    missing_terms: int = 0
    postings_visited: int = 0
    candidate_docs: int = 0
    scored_docs: int = 0
    results_returned: int = 0


@dataclass
class QueryProfile:
    """Timings and counters captured while answering one query."""

    query: str
    timings: QueryTimings = field(default_factory=QueryTimings)
    counts: QueryCounters = field(default_factory=QueryCounters)


class PhaseTimer:
    """Stopwatch that reports milliseconds since the previous lap."""

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._last = self._start

    def lap(self) -> float:
        now = time.perf_counter()
        elapsed = (now - self._last) * 1000
        self._last = now
        return elapsed

    def total(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile; 0.0 for an empty list."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((pct / 100) * len(ordered)) - 1
    return ordered[max(0, index)]


class ProfileCollector:
    """Keeps a sliding window of query profiles and summarizes them.

    Pass ``collector.record`` as the ``on_profile`` callback of a query.
    """

    def __init__(self, window_size: int = 1000) -> None:
        self.window_size = window_size
        self._profiles: deque[QueryProfile] = deque(maxlen=window_size)

    def __len__(self) -> int:
        return len(self._profiles)

    def record(self, profile: QueryProfile) -> None:
        self._profiles.append(profile)

    def slowest(self, limit: int = 5) -> list[QueryProfile]:
        return sorted(self._profiles, key=lambda p: p.timings.total_ms, reverse=True)[:limit]

    def get_stats(self) -> dict:
        """Summarize recorded profiles; empty dict when nothing was recorded."""
        if not self._profiles:
            return {}

        count = len(self._profiles)
        totals = [p.timings.total_ms for p in self._profiles]

        def mean(values: list[float]) -> float:
            return sum(values) / count

        return {
            "count": count,
            "latency_ms": {
                "mean": mean(totals),
                "p50": percentile(totals, 50),
                "p95": percentile(totals, 95),
                "max": max(totals),
            },
            "phases_ms": {
                "ngram": mean([p.timings.ngram_ms for p in self._profiles]),
                "term_stats": mean([p.timings.term_stats_ms for p in self._profiles]),
                "candidates": mean([p.timings.candidate_ms for p in self._profiles]),
                "scoring": mean([p.timings.scoring_ms for p in self._profiles]),
                "sort": mean([p.timings.sort_ms for p in self._profiles]),
            },
            "counts": {
                "unique_ngrams": mean([p.counts.unique_ngram_count for p in self._profiles]),
                "missing_terms": mean([p.counts.missing_terms for p in self._profiles]),
                "postings_visited": mean([p.counts.postings_visited for p in self._profiles]),
                "candidates": mean([p.counts.candidate_docs for p in self._profiles]),
                "results": mean([p.counts.results_returned for p in self._profiles]),
            },
        }

    def reset(self) -> None:
        self._profiles.clear()
