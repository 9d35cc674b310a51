"""Character n-gram analysis for fuzzy matching.

Text is folded (accents stripped, case folded, punctuation collapsed to single
spaces), padded with one space on each side, and cut into fixed-width sliding
windows. Normalization then rewrites the spaces inside each window into
padding symbols so that n-grams at the start of a word, at the end of a word,
and spanning two words never collide with interior n-grams.

The same configuration must be used at index time and at query time; changing
it invalidates every stored index.
"""

from __future__ import annotations

from collections.abc import Iterable
import hashlib
import re
from typing import Protocol
import unicodedata

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)
_BOUNDARY = " "


class NgramConfig(BaseModel):
    """Immutable tokenizer configuration shared by indexing and querying."""

    model_config = ConfigDict(frozen=True)

    n: int = Field(default=3, ge=2, description="Sliding window width")
    padding_left: str = Field(default="$", description="Marks an n-gram touching the start of a word")
    padding_right: str = Field(default="!", description="Marks an n-gram touching the end of a word")
    padding_middle: str = Field(default="_", description="Marks a word gap inside an n-gram")

    @field_validator("padding_left", "padding_right", "padding_middle")
    @classmethod
    def _check_symbol(cls, value: str) -> str:
        if not value:
            raise ValueError("padding symbol must not be empty")
        if any(ch.isspace() or ch.isalnum() for ch in value):
            raise ValueError(f"padding symbol {value!r} must not contain whitespace or alphanumerics")
        return value

    @model_validator(mode="after")
    def _check_distinct(self) -> NgramConfig:
        symbols = {self.padding_left, self.padding_right, self.padding_middle}
        if len(symbols) != 3:
            raise ValueError("padding_left, padding_right and padding_middle must be pairwise distinct")
        return self

    def fingerprint(self) -> str:
        """Stable digest identifying this tokenization scheme."""
        payload = self.model_dump_json().encode("utf-8")
        return hashlib.sha256(payload).hexdigest()[:16]


class Analyzer(Protocol):
    """Protocol implemented by analyzers: text in, ordered terms out."""

    def __call__(self, text: str) -> list[str]:  # pragma: no cover - interface definition
        ...


def fold_text(text: str) -> str:
    """Strip accents, case fold, and collapse non-alphanumeric runs to single spaces."""

    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(_BOUNDARY, stripped.casefold()).strip()


class NgramComputer:
    """Produces raw sliding-window n-grams over folded text."""

    def __init__(self, n: int) -> None:
        if n < 2:
            raise ValueError(f"n-gram width must be at least 2, got {n}")
        self.n = n

    def compute_ngrams(self, text: str) -> list[str]:
        folded = fold_text(text)
        if not folded:
            return []
        padded = f"{_BOUNDARY}{folded}{_BOUNDARY}"
        if len(padded) <= self.n:
            return [padded]
        return [padded[i : i + self.n] for i in range(len(padded) - self.n + 1)]


class NgramNormalizer:
    """Rewrites word boundaries inside raw n-grams into padding symbols."""

    def __init__(self, padding_left: str, padding_right: str, padding_middle: str) -> None:
        self.padding_left = padding_left
        self.padding_right = padding_right
        self.padding_middle = padding_middle

    def normalize_ngram(self, ngram: str) -> str:
        last = len(ngram) - 1
        parts: list[str] = []
        for index, char in enumerate(ngram):
            if char != _BOUNDARY:
                parts.append(char)
            elif index == 0:
                parts.append(self.padding_left)
            elif index == last:
                parts.append(self.padding_right)
            else:
                parts.append(self.padding_middle)
        return "".join(parts)

    def normalize(self, ngrams: Iterable[str]) -> list[str]:
        return [self.normalize_ngram(ngram) for ngram in ngrams]


class NgramAnalyzer:
    """Callable analyzer combining ``NgramComputer`` and ``NgramNormalizer``."""

    def __init__(self, config: NgramConfig | None = None) -> None:
        self.config = config or NgramConfig()
        self.computer = NgramComputer(self.config.n)
        self.normalizer = NgramNormalizer(
            self.config.padding_left,
            self.config.padding_right,
            self.config.padding_middle,
        )

    def __call__(self, text: str) -> list[str]:
        return self.normalizer.normalize(self.computer.compute_ngrams(text))

    @property
    def fingerprint(self) -> str:
        return self.config.fingerprint()
