"""SQLite-specific storage behavior: persistence, tokenizer pinning, threading."""

import sqlite3
import threading

import pytest

from ngram_search.search.errors import StorageError, TokenizerMismatchError
from ngram_search.search.inverted_index import InvertedIndex
from ngram_search.search.models import CorpusStats, Posting
from ngram_search.search.sqlite_storage import SqliteIndexStorage


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "index.db"


def test_creates_parent_directory(db_path):
    with SqliteIndexStorage(db_path):
        assert db_path.exists()


def test_data_survives_reopen(db_path):
    with SqliteIndexStorage(db_path) as storage:
        index = InvertedIndex(storage)
        index.add("d1", ["$ab", "ab!", "$ab"])

    with SqliteIndexStorage(db_path) as reopened:
        index = InvertedIndex(reopened)
        assert "d1" in index
        assert reopened.get_posting("$ab", "d1") == Posting.from_positions([0, 2])
        assert reopened.get_corpus_stats() == CorpusStats(total_documents=1, total_term_count=3)
        assert index.check_integrity() == []


def test_tokenizer_fingerprint_is_recorded_on_first_open(db_path):
    SqliteIndexStorage(db_path, tokenizer_fingerprint="abc").close()

    with SqliteIndexStorage(db_path, tokenizer_fingerprint="abc"):
        pass

    with pytest.raises(TokenizerMismatchError):
        SqliteIndexStorage(db_path, tokenizer_fingerprint="xyz")


def test_opening_without_fingerprint_skips_check(db_path):
    SqliteIndexStorage(db_path, tokenizer_fingerprint="abc").close()
    with SqliteIndexStorage(db_path) as storage:
        assert storage.get_corpus_stats() == CorpusStats()


def test_positions_round_trip_through_blob(db_path):
    positions = list(range(0, 5000, 7))
    with SqliteIndexStorage(db_path) as storage:
        storage.set_posting("abc", "d1", Posting.from_positions(positions))
        assert list(storage.get_posting("abc", "d1").positions) == positions


def test_reads_from_other_threads_see_committed_writes(db_path):
    with SqliteIndexStorage(db_path) as storage:
        storage.set_doc_count("abc", 4)
        seen = []

        def read():
            seen.append(storage.get_doc_count("abc"))

        threads = [threading.Thread(target=read) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == [4, 4, 4, 4]


def test_failed_write_is_wrapped_and_rolled_back(db_path):
    with SqliteIndexStorage(db_path) as storage:
        storage._writer.execute("DROP TABLE terms")
        with pytest.raises(StorageError, match="SQLite write failed"):
            storage.set_posting("abc", "d1", Posting.from_positions([0]))
        assert not storage._writer.in_transaction
        assert storage.get_posting("abc", "d1") is None


def test_open_failure_is_wrapped(tmp_path, monkeypatch):
    def _fail(*_args, **_kwargs):
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr("ngram_search.search.sqlite_storage.sqlite3.connect", _fail)
    with pytest.raises(StorageError, match="Failed to open"):
        SqliteIndexStorage(tmp_path / "index.db")
