"""Incrementally maintained n-gram inverted index.

The index keeps three maps in an injected ``IndexStorage``: postings per
term, metadata per document, and corpus-wide counters. Every mutation keeps
these invariants:

1. ``TermEntry.doc_count`` equals the number of postings under the term.
2. ``CorpusStats.total_documents`` equals the number of documents with meta.
3. ``CorpusStats.total_term_count`` equals the sum of ``DocumentMeta.term_count``.
4. A posting ``(term, doc)`` exists exactly when ``term`` is in the document's
   ``unique_terms``.
5. Posting positions are non-empty and strictly ascending.

Mutations to the same document id must be serialized by the caller; nothing
here locks. Missing entries are read as absent, never as errors.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from enum import Enum
import hashlib
import logging

from ngram_search.search.errors import DuplicateDocumentError
from ngram_search.search.models import CorpusStats, DocumentMeta, Posting, TermEntry
from ngram_search.search.storage import IndexStorage


logger = logging.getLogger(__name__)

_HASH_SEPARATOR = "\0"


class UpsertOutcome(str, Enum):
    """What an upsert did to the index."""

    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


def calculate_term_meta(terms: Sequence[str]) -> dict[str, Posting]:
    """Return the posting (frequency and ascending positions) of every distinct term."""

    positions: dict[str, list[int]] = defaultdict(list)
    for index, term in enumerate(terms):
        positions[term].append(index)
    return {term: Posting.from_positions(term_positions) for term, term_positions in positions.items()}


def document_fingerprint(terms: Sequence[str]) -> str:
    """Order-sensitive 64-bit digest of a token sequence."""

    joined = _HASH_SEPARATOR.join(terms).encode("utf-8")
    return hashlib.blake2b(joined, digest_size=8).hexdigest()


def calculate_doc_meta(terms: Sequence[str]) -> DocumentMeta:
    return DocumentMeta(
        hash=document_fingerprint(terms),
        term_count=len(terms),
        unique_terms=tuple(dict.fromkeys(terms)),
    )


class InvertedIndex:
    """Postings, document metadata and corpus stats with add/remove/upsert."""

    def __init__(self, storage: IndexStorage, *, prune_empty_terms: bool = True) -> None:
        self._storage = storage
        self.prune_empty_terms = prune_empty_terms

    @property
    def storage(self) -> IndexStorage:
        return self._storage

    @property
    def corpus_stats(self) -> CorpusStats:
        return self._storage.get_corpus_stats()

    def __len__(self) -> int:
        return self.corpus_stats.total_documents

    def __contains__(self, doc_id: object) -> bool:
        return isinstance(doc_id, str) and self._storage.get_doc_meta(doc_id) is not None

    def doc_meta(self, doc_id: str) -> DocumentMeta | None:
        return self._storage.get_doc_meta(doc_id)

    def term_entry(self, term: str) -> TermEntry | None:
        return self._storage.get_term(term)

    def doc_frequency(self, term: str) -> int:
        """Maintained document count of ``term``; 0 when the term is unknown."""
        return self._storage.get_doc_count(term)

    def add(self, doc_id: str, terms: Sequence[str]) -> bool:
        """Index a new document.

        Returns False when ``terms`` is empty (the document is skipped).

        Raises:
            DuplicateDocumentError: ``doc_id`` is already indexed; use ``upsert``.
        """
        if not terms:
            logger.debug("Skipping document %s with no terms", doc_id)
            return False
        if self._storage.get_doc_meta(doc_id) is not None:
            raise DuplicateDocumentError(doc_id)
        self._add(doc_id, terms, calculate_doc_meta(terms))
        return True

    def remove(self, doc_id: str) -> bool:
        """Remove every trace of ``doc_id``. Unknown ids are a no-op returning False."""
        meta = self._storage.get_doc_meta(doc_id)
        if meta is None:
            return False

        stats = self._storage.get_corpus_stats()
        self._storage.set_corpus_stats(
            CorpusStats(
                total_documents=max(0, stats.total_documents - 1),
                total_term_count=max(0, stats.total_term_count - meta.term_count),
            )
        )
        for term in meta.unique_terms:
            self._drop_posting(term, doc_id)
        self._storage.delete_doc_meta(doc_id)
        logger.debug("Removed document %s (%d terms)", doc_id, meta.term_count)
        return True

    def upsert(self, doc_id: str, terms: Sequence[str]) -> UpsertOutcome:
        """Add or replace a document, writing only what changed.

        A document whose token hash matches the stored one is left untouched
        without a single storage write.
        """
        if not terms:
            logger.debug("Skipping document %s with no terms", doc_id)
            return UpsertOutcome.SKIPPED

        old_meta = self._storage.get_doc_meta(doc_id)
        new_meta = calculate_doc_meta(terms)
        if old_meta is None:
            self._add(doc_id, terms, new_meta)
            return UpsertOutcome.ADDED
        if new_meta.hash == old_meta.hash:
            return UpsertOutcome.UNCHANGED

        kept_terms = set(new_meta.unique_terms)
        for term in old_meta.unique_terms:
            if term not in kept_terms:
                self._drop_posting(term, doc_id)

        stats = self._storage.get_corpus_stats()
        self._storage.set_corpus_stats(
            CorpusStats(
                total_documents=stats.total_documents,
                total_term_count=stats.total_term_count + (new_meta.term_count - old_meta.term_count),
            )
        )
        self._storage.set_doc_meta(doc_id, new_meta)
        self._write_postings(doc_id, terms)
        logger.debug("Updated document %s (%d -> %d terms)", doc_id, old_meta.term_count, new_meta.term_count)
        return UpsertOutcome.UPDATED

    def _add(self, doc_id: str, terms: Sequence[str], meta: DocumentMeta) -> None:
        self._storage.set_doc_meta(doc_id, meta)
        stats = self._storage.get_corpus_stats()
        self._storage.set_corpus_stats(
            CorpusStats(
                total_documents=stats.total_documents + 1,
                total_term_count=stats.total_term_count + meta.term_count,
            )
        )
        self._write_postings(doc_id, terms)
        logger.debug("Added document %s (%d terms)", doc_id, meta.term_count)

    def _write_postings(self, doc_id: str, terms: Sequence[str]) -> None:
        for term, posting in calculate_term_meta(terms).items():
            is_new = self._storage.get_posting(term, doc_id) is None
            self._storage.set_posting(term, doc_id, posting)
            if is_new:
                self._storage.set_doc_count(term, self._storage.get_doc_count(term) + 1)

    def _drop_posting(self, term: str, doc_id: str) -> None:
        if self._storage.get_posting(term, doc_id) is None:
            return
        self._storage.delete_posting(term, doc_id)
        remaining = max(0, self._storage.get_doc_count(term) - 1)
        if remaining == 0 and self.prune_empty_terms:
            self._storage.delete_term(term)
        else:
            self._storage.set_doc_count(term, remaining)

    def check_integrity(self) -> list[str]:
        """Audit the stored index and describe every invariant violation found."""

        problems: list[str] = []
        stats = self._storage.get_corpus_stats()
        unique_terms: dict[str, frozenset[str]] = {}
        total_terms = 0

        for doc_id in self._storage.iter_doc_ids():
            meta = self._storage.get_doc_meta(doc_id)
            if meta is None:
                continue
            unique_terms[doc_id] = frozenset(meta.unique_terms)
            total_terms += meta.term_count
            for term in meta.unique_terms:
                if self._storage.get_posting(term, doc_id) is None:
                    problems.append(f"document {doc_id!r} lists term {term!r} but has no posting")

        if stats.total_documents != len(unique_terms):
            problems.append(f"total_documents is {stats.total_documents}, expected {len(unique_terms)}")
        if stats.total_term_count != total_terms:
            problems.append(f"total_term_count is {stats.total_term_count}, expected {total_terms}")

        for term in self._storage.iter_terms():
            entry = self._storage.get_term(term)
            if entry is None:
                continue
            if entry.doc_count != len(entry.postings):
                problems.append(f"term {term!r} doc_count is {entry.doc_count}, expected {len(entry.postings)}")
            for doc_id, posting in entry.postings.items():
                if term not in unique_terms.get(doc_id, frozenset()):
                    problems.append(f"posting ({term!r}, {doc_id!r}) has no matching document meta")
                positions = list(posting.positions)
                if not positions or any(left >= right for left, right in zip(positions, positions[1:])):
                    problems.append(f"posting ({term!r}, {doc_id!r}) positions are empty or unordered")
                elif posting.frequency != len(positions):
                    problems.append(f"posting ({term!r}, {doc_id!r}) frequency does not match positions")

        return problems
