"""Unit tests for the rarity-guided query engine."""

import math

import pytest

from ngram_search.search.analyzers import NgramAnalyzer
from ngram_search.search.inverted_index import InvertedIndex
from ngram_search.search.query_engine import DEFAULT_CANDIDATE_POOL_SIZE, QueryEngine
from ngram_search.search.stats import bm25, calculate_idf, combine_quality
from ngram_search.search.storage import InMemoryIndexStorage


# None of these share a trigram with "quick".
FILLER_TEXTS = ["slow brown bear", "green tea pot", "warm sunny day", "old red barn"]


def _build(docs, analyzer, **engine_kwargs):
    index = InvertedIndex(InMemoryIndexStorage())
    for doc_id, text in docs.items():
        index.upsert(doc_id, analyzer(text))
    return index, QueryEngine(index, analyzer, **engine_kwargs)


@pytest.fixture
def scenario_docs():
    return {"d1": "the quick fox", "d2": "the quick dog", "d3": "a lazy cat"}


def test_pool_size_must_be_positive(index, analyzer):
    assert QueryEngine(index, analyzer).candidate_pool_size == DEFAULT_CANDIDATE_POOL_SIZE
    with pytest.raises(ValueError, match="candidate_pool_size"):
        QueryEngine(index, analyzer, candidate_pool_size=0)


@pytest.mark.parametrize("text", ["", "   ", "\t", "!!!"])
def test_empty_queries_return_nothing(analyzer, scenario_docs, text):
    _, engine = _build(scenario_docs, analyzer)
    assert engine.query(text, float("-inf")) == []


def test_query_against_empty_index(index, analyzer):
    engine = QueryEngine(index, analyzer)
    assert engine.query("quick") == []


def test_analyze_query_keeps_frequency_and_positions(index, analyzer):
    terms = QueryEngine(index, analyzer).analyze_query("aaaa")
    assert terms.ngrams == ("$aa", "aaa", "aaa", "aa!")
    assert terms.unique == ("$aa", "aaa", "aa!")
    assert list(terms.term_meta["aaa"].positions) == [1, 2]


def test_rank_terms_orders_by_document_frequency(whitespace_analyzer):
    docs = {"a": "common rare", "b": "common mid", "c": "common mid"}
    _, engine = _build(docs, whitespace_analyzer)
    ranked = engine.rank_terms(engine.analyze_query("common mid rare unknown"))
    assert ranked == [("unknown", 0), ("rare", 1), ("mid", 2), ("common", 3)]


class TestScenario:
    def test_small_corpus_scores_matches_only(self, analyzer, scenario_docs):
        # N=3 and df=2 give idf=ln(1.5/2.5), so both matches score about -1.949.
        # After removing d2, N=2 and df=1 give idf=0 and nothing is returned.
        index, engine = _build(scenario_docs, analyzer)

        results = engine.query("quick", float("-inf"))

        assert [result.id for result in results] == ["d1", "d2"]
        assert results[0].quality == pytest.approx(results[1].quality)
        assert results[0].quality == pytest.approx(-1.949, abs=1e-3)
        assert engine.query("quick") == []

        index.remove("d2")
        assert engine.query("quick", float("-inf")) == []

    def test_quick_fox_ranking_and_removal(self, analyzer, scenario_docs):
        docs = dict(scenario_docs)
        docs.update({f"f{i}": text for i, text in enumerate(FILLER_TEXTS)})
        index, engine = _build(docs, analyzer)

        results = engine.query("quick")
        assert [result.id for result in results] == ["d1", "d2"]
        assert results[0].quality == pytest.approx(results[1].quality)
        assert all(result.quality > 0 for result in results)

        index.remove("d2")
        after = engine.query("quick")

        stats = index.corpus_stats
        assert stats.total_documents == 6
        doc_length = index.doc_meta("d1").term_count
        expected_bm25 = 5 * calculate_idf(1, 6) * bm25(1, doc_length, stats.average_length)
        assert [result.id for result in after] == ["d1"]
        assert after[0].quality == pytest.approx(combine_quality(expected_bm25, 1.0))
        assert after[0].quality != pytest.approx(results[0].quality)

    def test_typo_still_matches(self, analyzer):
        docs = {"fox": "the quick fox", "cat": "a lazy cat"}
        docs.update({f"f{i}": text for i, text in enumerate(FILLER_TEXTS)})
        _, engine = _build(docs, analyzer)

        results = engine.query("quikc fox")

        assert results[0].id == "fox"


class TestCandidatePool:
    @pytest.fixture
    def rarity_docs(self):
        docs = {"a1": "alpha beta", "a2": "alpha", "b1": "beta", "b2": "beta"}
        docs.update({f"g{i}": f"gamma{i}" for i in range(6)})
        return docs

    def test_rarest_term_admits_candidates_first(self, whitespace_analyzer, rarity_docs):
        _, engine = _build(rarity_docs, whitespace_analyzer, candidate_pool_size=2)

        results = engine.query("beta alpha")

        assert [result.id for result in results] == ["a1", "a2"]

    def test_tracked_candidates_keep_accumulating(self, whitespace_analyzer, rarity_docs):
        _, engine = _build(rarity_docs, whitespace_analyzer, candidate_pool_size=2)
        profiles = []

        results = engine.query("beta alpha", on_profile=profiles.append)

        assert results[0].quality > results[1].quality
        counts = profiles[0].counts
        assert counts.candidate_docs == 2
        assert counts.postings_visited == 5

    def test_large_pool_admits_everyone(self, whitespace_analyzer, rarity_docs):
        _, engine = _build(rarity_docs, whitespace_analyzer)

        results = engine.query("beta alpha")

        assert {result.id for result in results} == {"a1", "a2", "b1", "b2"}
        assert results[0].id == "a1"


def test_min_quality_filters(whitespace_analyzer):
    docs = {"a": "alpha", "b": "beta"}
    docs.update({f"g{i}": f"gamma{i}" for i in range(4)})
    _, engine = _build(docs, whitespace_analyzer)

    (result,) = engine.query("alpha")
    assert engine.query("alpha", min_quality=result.quality) == [result]
    assert engine.query("alpha", min_quality=math.nextafter(result.quality, math.inf)) == []


def test_zero_bm25_candidates_are_dropped(whitespace_analyzer):
    # df == N / 2 gives idf == 0
    _, engine = _build({"a": "alpha", "b": "beta"}, whitespace_analyzer)
    assert engine.query("alpha", float("-inf")) == []


def test_profile_hook_reports_phases(analyzer, scenario_docs):
    _, engine = _build(scenario_docs, analyzer)
    profiles = []

    engine.query("quick zebra", float("-inf"), on_profile=profiles.append)

    (profile,) = profiles
    assert profile.query == "quick zebra"
    assert profile.counts.ngram_count == len(NgramAnalyzer()("quick zebra"))
    assert profile.counts.missing_terms > 0
    assert profile.counts.candidate_docs == 2
    assert profile.counts.results_returned == 2
    assert profile.timings.total_ms >= 0


def test_profile_hook_runs_for_empty_query(index, analyzer):
    profiles = []
    QueryEngine(index, analyzer).query("  ", on_profile=profiles.append)
    assert profiles[0].counts.ngram_count == 0
