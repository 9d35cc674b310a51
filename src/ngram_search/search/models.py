"""Search data models."""

from __future__ import annotations

from array import array
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Document:
    """A caller-owned document: an id plus the text to index."""

    id: str
    text: str


@dataclass(frozen=True, slots=True)
class Posting:
    """Occurrences of one term in one document.

    ``positions`` holds the 0-based token indices of the term, ascending.
    """

    frequency: int
    positions: array

    @classmethod
    def from_positions(cls, positions: list[int]) -> Posting:
        return cls(frequency=len(positions), positions=array("I", positions))

    def to_dict(self) -> dict[str, Any]:
        return {"f": self.frequency, "p": list(self.positions)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Posting:
        positions = data.get("p") or data.get("positions", [])
        frequency = data.get("f", data.get("frequency", len(positions)))
        return cls(frequency=int(frequency), positions=array("I", (int(pos) for pos in positions)))


@dataclass(slots=True)
class TermEntry:
    """Document frequency plus the postings of a single term."""

    doc_count: int = 0
    postings: dict[str, Posting] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "c": self.doc_count,
            "p": {doc_id: posting.to_dict() for doc_id, posting in self.postings.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TermEntry:
        raw_postings = data.get("p", {})
        return cls(
            doc_count=int(data.get("c", len(raw_postings))),
            postings={str(doc_id): Posting.from_dict(entry) for doc_id, entry in raw_postings.items()},
        )


@dataclass(frozen=True, slots=True)
class DocumentMeta:
    """Per-document bookkeeping used for change detection and length normalization."""

    hash: str
    term_count: int
    unique_terms: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"h": self.hash, "c": self.term_count, "u": list(self.unique_terms)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentMeta:
        return cls(
            hash=str(data["h"]),
            term_count=int(data.get("c", 0)),
            unique_terms=tuple(data.get("u", ())),
        )


@dataclass(frozen=True, slots=True)
class CorpusStats:
    """Aggregate corpus counters used by BM25."""

    total_documents: int = 0
    total_term_count: int = 0

    @property
    def average_length(self) -> float:
        if self.total_documents <= 0:
            return 0.0
        return self.total_term_count / self.total_documents

    def to_dict(self) -> dict[str, int]:
        return {"d": self.total_documents, "t": self.total_term_count}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CorpusStats:
        return cls(total_documents=int(data.get("d", 0)), total_term_count=int(data.get("t", 0)))


@dataclass(frozen=True, slots=True)
class QueryResult:
    """A ranked document id with its quality score."""

    id: str
    quality: float
