"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

ENV_PREFIX = "NGRAM_SEARCH_"

# Strip settings from the developer shell so defaults are what tests see
for key in [key for key in os.environ if key.upper().startswith(ENV_PREFIX)]:
    del os.environ[key]

from ngram_search.config import Settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Clear NGRAM_SEARCH_* variables and run each test away from any .env file."""
    for key in list(os.environ):
        if key.upper().startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def test_settings():
    """Settings with defaults and a recognizable index name."""
    return Settings(index_name="test-index")


@pytest.fixture
def whitespace_analyzer():
    """Analyzer that treats every whitespace-separated word as one term."""
    return lambda text: text.split()

