"""Fuzzy full-text search over a character n-gram inverted index."""

from ngram_search.fuzzy_index import FuzzySearchIndex
from ngram_search.search.models import Document, QueryResult


__all__ = ["Document", "FuzzySearchIndex", "QueryResult"]
