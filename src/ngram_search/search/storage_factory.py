"""Storage factory for choosing between in-memory and SQLite backends."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from ngram_search.search.sqlite_storage import SqliteIndexStorage
from ngram_search.search.storage import IndexStorage, InMemoryIndexStorage


if TYPE_CHECKING:
    from ngram_search.config import Settings


def create_index_storage(settings: Settings, *, tokenizer_fingerprint: str | None = None) -> IndexStorage:
    """Create the storage backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "sqlite":
        return SqliteIndexStorage(Path(settings.sqlite_path), tokenizer_fingerprint=tokenizer_fingerprint)
    return InMemoryIndexStorage()
