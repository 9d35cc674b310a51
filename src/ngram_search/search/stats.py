"""Statistical helpers for BM25 plus coverage scoring.

The functions here stay independent of any storage backend so the query
engine and tests can share them.
"""

from __future__ import annotations

import math


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return ``ln((N - df + 0.5) / (df + 0.5))``.

    The value is not floored: n-grams present in more than half of the corpus
    get a negative weight and pull scores down.
    """

    return math.log((total_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF."""

    if tf <= 0:
        return 0.0
    length_ratio = doc_length / avg_doc_length if avg_doc_length > 0 else 0.0
    denominator = tf + k1 * (1 - b + b * length_ratio)
    return (tf * (k1 + 1)) / denominator


def coverage_ratio(matched_terms: int, query_terms: int) -> float:
    """Square root of the share of distinct query terms a document matched."""

    if query_terms <= 0:
        return 0.0
    return math.sqrt(matched_terms / query_terms)


def combine_quality(bm25_score: float, coverage: float, *, coverage_weight: float = 0.15) -> float:
    return bm25_score * (1.0 - coverage_weight) + coverage * coverage_weight
