"""Unit test fixtures; every test collected below this directory is marked ``unit``."""

from pathlib import Path

import pytest

from ngram_search.search.analyzers import NgramAnalyzer
from ngram_search.search.inverted_index import InvertedIndex
from ngram_search.search.storage import InMemoryIndexStorage


UNIT_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(config, items):
    for item in items:
        if UNIT_ROOT in Path(item.fspath).parents:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def memory_storage():
    return InMemoryIndexStorage()


@pytest.fixture
def index(memory_storage):
    return InvertedIndex(memory_storage)


@pytest.fixture
def analyzer():
    """Default trigram analyzer."""
    return NgramAnalyzer()
