"""Exceptions raised by the n-gram search stack.

Absence (unknown documents, missing terms) is never an error here; these
exceptions only cover caller mistakes and backend failures.
"""

from __future__ import annotations


class SearchIndexError(Exception):
    """Base class for search index failures."""


class DuplicateDocumentError(SearchIndexError, ValueError):
    """Raised when ``add`` is called for a document id that is already indexed."""

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document already indexed: {doc_id!r} (use upsert to replace it)")
        self.doc_id = doc_id


class StorageError(SearchIndexError):
    """Raised when a storage backend cannot complete an operation."""


class TokenizerMismatchError(StorageError):
    """Raised when a persisted index was built with a different tokenizer configuration."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(
            f"Index was built with tokenizer {found}, but {expected} was requested; rebuild the index"
        )
        self.expected = expected
        self.found = found
