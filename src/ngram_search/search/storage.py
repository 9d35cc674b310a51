"""Storage collaborator for the inverted index.

The index never touches a concrete container directly. It reads and writes
three logical maps through ``IndexStorage``:

* postings - ``term -> TermEntry`` (doc count plus ``doc_id -> Posting``)
* doc meta - ``doc_id -> DocumentMeta``
* corpus stats - a singleton ``CorpusStats`` record

Every operation touches a single key, and nested term entries are created
lazily on first write. Backends guarantee that a read reflects every prior
write issued through the same instance; replication and merge semantics
belong to the backend.

``InMemoryIndexStorage`` is the default backend. It can be persisted as a
minified JSON snapshot with ``save_snapshot`` / ``load_snapshot``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import orjson

from ngram_search.search.errors import StorageError, TokenizerMismatchError
from ngram_search.search.models import CorpusStats, DocumentMeta, Posting, TermEntry


logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


@runtime_checkable
class IndexStorage(Protocol):
    """Per-key access to the postings, doc meta and corpus stats maps."""

    def get_term(self, term: str) -> TermEntry | None:  # pragma: no cover - Protocol only
        """Return the entry for ``term`` or None. Callers must not mutate it."""

    def get_doc_count(self, term: str) -> int:  # pragma: no cover - Protocol only
        """Return the maintained document count of ``term`` (0 when absent)."""

    def set_doc_count(self, term: str, doc_count: int) -> None:  # pragma: no cover - Protocol only
        """Store the document count, creating the term entry if needed."""

    def get_posting(self, term: str, doc_id: str) -> Posting | None:  # pragma: no cover - Protocol only
        """Return the posting of ``doc_id`` under ``term`` or None."""

    def set_posting(self, term: str, doc_id: str, posting: Posting) -> None:  # pragma: no cover - Protocol only
        """Write or overwrite a posting, creating the term entry if needed."""

    def delete_posting(self, term: str, doc_id: str) -> None:  # pragma: no cover - Protocol only
        """Delete a posting; missing keys are ignored."""

    def delete_term(self, term: str) -> None:  # pragma: no cover - Protocol only
        """Delete a term entry and all of its postings; missing keys are ignored."""

    def iter_terms(self) -> Iterator[str]:  # pragma: no cover - Protocol only
        """Iterate over every stored term."""

    def get_doc_meta(self, doc_id: str) -> DocumentMeta | None:  # pragma: no cover - Protocol only
        """Return the meta of ``doc_id`` or None."""

    def set_doc_meta(self, doc_id: str, meta: DocumentMeta) -> None:  # pragma: no cover - Protocol only
        """Write or overwrite document meta."""

    def delete_doc_meta(self, doc_id: str) -> None:  # pragma: no cover - Protocol only
        """Delete document meta; missing keys are ignored."""

    def iter_doc_ids(self) -> Iterator[str]:  # pragma: no cover - Protocol only
        """Iterate over every indexed document id."""

    def get_corpus_stats(self) -> CorpusStats:  # pragma: no cover - Protocol only
        """Return the corpus stats record."""

    def set_corpus_stats(self, stats: CorpusStats) -> None:  # pragma: no cover - Protocol only
        """Replace the corpus stats record."""


class InMemoryIndexStorage:
    """Dictionary-backed storage; the fastest option for a single process."""

    def __init__(self) -> None:
        self._postings: dict[str, TermEntry] = {}
        self._doc_meta: dict[str, DocumentMeta] = {}
        self._corpus_stats = CorpusStats()

    def get_term(self, term: str) -> TermEntry | None:
        return self._postings.get(term)

    def get_doc_count(self, term: str) -> int:
        entry = self._postings.get(term)
        return entry.doc_count if entry is not None else 0

    def set_doc_count(self, term: str, doc_count: int) -> None:
        self._entry(term).doc_count = doc_count

    def get_posting(self, term: str, doc_id: str) -> Posting | None:
        entry = self._postings.get(term)
        if entry is None:
            return None
        return entry.postings.get(doc_id)

    def set_posting(self, term: str, doc_id: str, posting: Posting) -> None:
        self._entry(term).postings[doc_id] = posting

    def delete_posting(self, term: str, doc_id: str) -> None:
        entry = self._postings.get(term)
        if entry is not None:
            entry.postings.pop(doc_id, None)

    def delete_term(self, term: str) -> None:
        self._postings.pop(term, None)

    def iter_terms(self) -> Iterator[str]:
        return iter(list(self._postings))

    def get_doc_meta(self, doc_id: str) -> DocumentMeta | None:
        return self._doc_meta.get(doc_id)

    def set_doc_meta(self, doc_id: str, meta: DocumentMeta) -> None:
        self._doc_meta[doc_id] = meta

    def delete_doc_meta(self, doc_id: str) -> None:
        self._doc_meta.pop(doc_id, None)

    def iter_doc_ids(self) -> Iterator[str]:
        return iter(list(self._doc_meta))

    def get_corpus_stats(self) -> CorpusStats:
        return self._corpus_stats

    def set_corpus_stats(self, stats: CorpusStats) -> None:
        self._corpus_stats = stats

    def _entry(self, term: str) -> TermEntry:
        entry = self._postings.get(term)
        if entry is None:
            entry = TermEntry()
            self._postings[term] = entry
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize with minimal keys: p=postings, m=doc meta, s=corpus stats."""
        return {
            "p": {term: entry.to_dict() for term, entry in self._postings.items()},
            "m": {doc_id: meta.to_dict() for doc_id, meta in self._doc_meta.items()},
            "s": self._corpus_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InMemoryIndexStorage:
        storage = cls()
        storage._postings = {str(term): TermEntry.from_dict(entry) for term, entry in data.get("p", {}).items()}
        storage._doc_meta = {str(doc_id): DocumentMeta.from_dict(meta) for doc_id, meta in data.get("m", {}).items()}
        storage._corpus_stats = CorpusStats.from_dict(data.get("s", {}))
        return storage


def save_snapshot(storage: InMemoryIndexStorage, path: Path, *, tokenizer_fingerprint: str) -> Path:
    """Persist ``storage`` to ``path`` atomically as minified JSON."""

    payload = {
        "v": SNAPSHOT_FORMAT_VERSION,
        "k": tokenizer_fingerprint,
        "c": datetime.now(timezone.utc).isoformat(),
        "i": storage.to_dict(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_bytes(orjson.dumps(payload))
        tmp_path.replace(path)
    except OSError as exc:
        raise StorageError(f"Failed to write index snapshot {path}: {exc}") from exc
    logger.debug("Saved index snapshot to %s", path)
    return path


def load_snapshot(path: Path, *, tokenizer_fingerprint: str | None = None) -> InMemoryIndexStorage:
    """Load a snapshot written by ``save_snapshot``.

    When ``tokenizer_fingerprint`` is given, the snapshot must have been
    written with the same tokenizer configuration.
    """

    try:
        data = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        raise StorageError(f"Failed to read index snapshot {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise StorageError(f"Index snapshot {path} is not a JSON object")

    version = data.get("v")
    if version != SNAPSHOT_FORMAT_VERSION:
        raise StorageError(f"Unsupported snapshot format version {version!r} in {path}")

    found = str(data.get("k", ""))
    if tokenizer_fingerprint is not None and found != tokenizer_fingerprint:
        raise TokenizerMismatchError(expected=tokenizer_fingerprint, found=found)

    try:
        return InMemoryIndexStorage.from_dict(data.get("i", {}))
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise StorageError(f"Malformed index snapshot {path}: {exc!r}") from exc
