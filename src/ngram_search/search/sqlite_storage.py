"""SQLite-backed ``IndexStorage``.

Each logical map is a ``WITHOUT ROWID`` table keyed the same way the index
addresses it, so every storage call is a single-row read or write:

- ``terms(term, doc_count)`` and ``postings(term, doc_id, frequency, positions)``
- ``doc_meta(doc_id, hash, term_count, unique_terms)``
- ``corpus_stats`` with exactly one row

Positions are stored as the raw bytes of an ``array('I')``. Writes go through
one autocommit connection guarded by a lock; reads use a thread-local
read-only connection, which WAL mode keeps consistent with committed writes.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterator
from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading

import orjson

from ngram_search.search.errors import StorageError, TokenizerMismatchError
from ngram_search.search.models import CorpusStats, DocumentMeta, Posting, TermEntry
from ngram_search.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL) WITHOUT ROWID",
    "CREATE TABLE IF NOT EXISTS terms (term TEXT PRIMARY KEY, doc_count INTEGER NOT NULL) WITHOUT ROWID",
    """CREATE TABLE IF NOT EXISTS postings (
        term TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        frequency INTEGER NOT NULL,
        positions BLOB NOT NULL,
        PRIMARY KEY (term, doc_id)
    ) WITHOUT ROWID""",
    """CREATE TABLE IF NOT EXISTS doc_meta (
        doc_id TEXT PRIMARY KEY,
        hash TEXT NOT NULL,
        term_count INTEGER NOT NULL,
        unique_terms BLOB NOT NULL
    ) WITHOUT ROWID""",
    """CREATE TABLE IF NOT EXISTS corpus_stats (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        total_documents INTEGER NOT NULL,
        total_term_count INTEGER NOT NULL
    )""",
)

_TOKENIZER_KEY = "tokenizer_fingerprint"


def _encode_positions(positions: array) -> bytes:
    return positions.tobytes()


def _decode_positions(blob: bytes | None) -> array:
    positions = array("I")
    if blob:
        positions.frombytes(blob)
    return positions


class SqliteIndexStorage:
    """Persistent storage following the repository pattern."""

    def __init__(self, db_path: str | Path, *, tokenizer_fingerprint: str | None = None) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._local = threading.local()
        self._readers: list[sqlite3.Connection] = []
        try:
            self._writer = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            apply_write_pragmas(self._writer)
            for statement in _SCHEMA:
                self._writer.execute(statement)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open SQLite index {self.db_path}: {exc}") from exc
        if tokenizer_fingerprint is not None:
            try:
                self._check_tokenizer(tokenizer_fingerprint)
            except StorageError:
                self.close()
                raise

    def __enter__(self) -> SqliteIndexStorage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check_tokenizer(self, fingerprint: str) -> None:
        row = self._read_one("SELECT value FROM metadata WHERE key = ?", (_TOKENIZER_KEY,))
        if row is None:
            self._write([("INSERT INTO metadata (key, value) VALUES (?, ?)", (_TOKENIZER_KEY, fingerprint))])
            return
        if row[0] != fingerprint:
            raise TokenizerMismatchError(expected=fingerprint, found=row[0])

    def _reader(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            apply_read_pragmas(conn)
            self._local.conn = conn
            with self._lock:
                self._readers.append(conn)
        return conn

    def _read_one(self, query: str, params: tuple = ()) -> tuple | None:
        try:
            return self._reader().execute(query, params).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite read failed: {exc}") from exc

    def _read_all(self, query: str, params: tuple = ()) -> list[tuple]:
        try:
            return self._reader().execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite read failed: {exc}") from exc

    def _write(self, statements: list[tuple[str, tuple]]) -> None:
        with self._lock:
            try:
                self._writer.execute("BEGIN IMMEDIATE")
                for query, params in statements:
                    self._writer.execute(query, params)
                self._writer.execute("COMMIT")
            except sqlite3.Error as exc:
                if self._writer.in_transaction:
                    self._writer.execute("ROLLBACK")
                raise StorageError(f"SQLite write failed: {exc}") from exc

    def get_term(self, term: str) -> TermEntry | None:
        row = self._read_one("SELECT doc_count FROM terms WHERE term = ?", (term,))
        if row is None:
            return None
        rows = self._read_all("SELECT doc_id, frequency, positions FROM postings WHERE term = ?", (term,))
        postings = {
            doc_id: Posting(frequency=int(frequency), positions=_decode_positions(blob))
            for doc_id, frequency, blob in rows
        }
        return TermEntry(doc_count=int(row[0]), postings=postings)

    def get_doc_count(self, term: str) -> int:
        row = self._read_one("SELECT doc_count FROM terms WHERE term = ?", (term,))
        return int(row[0]) if row is not None else 0

    def set_doc_count(self, term: str, doc_count: int) -> None:
        self._write(
            [
                (
                    "INSERT INTO terms (term, doc_count) VALUES (?, ?) "
                    "ON CONFLICT(term) DO UPDATE SET doc_count = excluded.doc_count",
                    (term, doc_count),
                )
            ]
        )

    def get_posting(self, term: str, doc_id: str) -> Posting | None:
        row = self._read_one(
            "SELECT frequency, positions FROM postings WHERE term = ? AND doc_id = ?",
            (term, doc_id),
        )
        if row is None:
            return None
        return Posting(frequency=int(row[0]), positions=_decode_positions(row[1]))

    def set_posting(self, term: str, doc_id: str, posting: Posting) -> None:
        self._write(
            [
                ("INSERT OR IGNORE INTO terms (term, doc_count) VALUES (?, 0)", (term,)),
                (
                    "INSERT INTO postings (term, doc_id, frequency, positions) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(term, doc_id) DO UPDATE SET "
                    "frequency = excluded.frequency, positions = excluded.positions",
                    (term, doc_id, posting.frequency, _encode_positions(posting.positions)),
                ),
            ]
        )

    def delete_posting(self, term: str, doc_id: str) -> None:
        self._write([("DELETE FROM postings WHERE term = ? AND doc_id = ?", (term, doc_id))])

    def delete_term(self, term: str) -> None:
        self._write(
            [
                ("DELETE FROM postings WHERE term = ?", (term,)),
                ("DELETE FROM terms WHERE term = ?", (term,)),
            ]
        )

    def iter_terms(self) -> Iterator[str]:
        return iter([row[0] for row in self._read_all("SELECT term FROM terms")])

    def get_doc_meta(self, doc_id: str) -> DocumentMeta | None:
        row = self._read_one("SELECT hash, term_count, unique_terms FROM doc_meta WHERE doc_id = ?", (doc_id,))
        if row is None:
            return None
        digest, term_count, unique_terms = row
        return DocumentMeta(hash=digest, term_count=int(term_count), unique_terms=tuple(orjson.loads(unique_terms)))

    def set_doc_meta(self, doc_id: str, meta: DocumentMeta) -> None:
        self._write(
            [
                (
                    "INSERT INTO doc_meta (doc_id, hash, term_count, unique_terms) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(doc_id) DO UPDATE SET hash = excluded.hash, "
                    "term_count = excluded.term_count, unique_terms = excluded.unique_terms",
                    (doc_id, meta.hash, meta.term_count, orjson.dumps(list(meta.unique_terms))),
                )
            ]
        )

    def delete_doc_meta(self, doc_id: str) -> None:
        self._write([("DELETE FROM doc_meta WHERE doc_id = ?", (doc_id,))])

    def iter_doc_ids(self) -> Iterator[str]:
        return iter([row[0] for row in self._read_all("SELECT doc_id FROM doc_meta")])

    def get_corpus_stats(self) -> CorpusStats:
        row = self._read_one("SELECT total_documents, total_term_count FROM corpus_stats WHERE id = 1")
        if row is None:
            return CorpusStats()
        return CorpusStats(total_documents=int(row[0]), total_term_count=int(row[1]))

    def set_corpus_stats(self, stats: CorpusStats) -> None:
        self._write(
            [
                (
                    "INSERT INTO corpus_stats (id, total_documents, total_term_count) VALUES (1, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET total_documents = excluded.total_documents, "
                    "total_term_count = excluded.total_term_count",
                    (stats.total_documents, stats.total_term_count),
                )
            ]
        )

    @contextmanager
    def _closing_errors(self, label: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            logger.warning("Failed to close SQLite %s connection for %s: %s", label, self.db_path, exc)

    def close(self) -> None:
        """Close the writer and every reader connection opened so far."""
        with self._lock:
            readers, self._readers = self._readers, []
        for conn in readers:
            with self._closing_errors("read"):
                conn.close()
        self._local = threading.local()
        with self._closing_errors("write"):
            self._writer.close()
