"""Observability for ngram-search: structured logging, tracing, and metrics."""

from ngram_search.observability.context import get_trace_context, index_context, trace_context
from ngram_search.observability.logging import JsonFormatter, configure_logging
from ngram_search.observability.metrics import (
    INDEX_DOC_COUNT,
    INDEX_MUTATIONS,
    SEARCH_LATENCY,
    get_metrics,
    init_metrics,
    track_latency,
)
from ngram_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "INDEX_DOC_COUNT",
    "INDEX_MUTATIONS",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "index_context",
    "init_metrics",
    "init_tracing",
    "trace_context",
    "track_latency",
]
