"""N-gram indexing and query engine package.

This package provides a pure-Python fuzzy search stack:
- analyzers: Character n-gram tokenizer and normalizer
- models: Postings, term entries, document meta and corpus stats
- storage: Storage protocol, in-memory backend and JSON snapshots
- sqlite_storage: SQLite-backed storage
- inverted_index: Incremental add/remove/upsert with invariant maintenance
- stats: BM25 and coverage scoring helpers
- query_engine: Rarity-guided, capacity-bounded candidate walk
- metrics: Per-query profiling
"""
