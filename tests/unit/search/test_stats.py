"""Unit tests for BM25 and coverage helpers."""

import math

import pytest

from ngram_search.search.stats import bm25, calculate_idf, combine_quality, coverage_ratio


class TestCalculateIdf:
    def test_rare_term_is_positive(self):
        assert calculate_idf(1, 10) == pytest.approx(math.log(9.5 / 1.5))

    def test_term_in_half_the_corpus_is_zero(self):
        assert calculate_idf(1, 2) == pytest.approx(0.0)

    def test_common_term_is_negative(self):
        assert calculate_idf(2, 3) < 0


class TestBm25:
    def test_average_length_document(self):
        # tf=1 at average length: (1 * 2.2) / (1 + 1.2) == 1
        assert bm25(1, 10, 10.0) == pytest.approx(1.0)

    def test_longer_documents_score_lower(self):
        assert bm25(2, 20, 10.0) < bm25(2, 5, 10.0)

    def test_higher_frequency_scores_higher(self):
        assert bm25(3, 10, 10.0) > bm25(1, 10, 10.0)

    def test_zero_average_length_is_guarded(self):
        expected = (1 * 2.2) / (1 + 1.2 * 0.25)
        assert bm25(1, 5, 0.0) == pytest.approx(expected)

    def test_zero_frequency(self):
        assert bm25(0, 5, 5.0) == 0.0

    def test_custom_parameters(self):
        # b=0 disables length normalization
        assert bm25(1, 100, 10.0, k1=2.0, b=0.0) == pytest.approx(1.0)


class TestCoverage:
    def test_full_coverage(self):
        assert coverage_ratio(5, 5) == 1.0

    def test_partial_coverage_is_square_rooted(self):
        assert coverage_ratio(1, 4) == pytest.approx(0.5)

    def test_no_query_terms(self):
        assert coverage_ratio(0, 0) == 0.0


def test_combine_quality_weights():
    assert combine_quality(2.0, 1.0) == pytest.approx(2.0 * 0.85 + 0.15)
    assert combine_quality(2.0, 0.5, coverage_weight=0.5) == pytest.approx(1.25)
