"""Centralized configuration for ngram-search using Pydantic Settings."""

from typing import Literal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ngram_search.search.analyzers import NgramConfig


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``NGRAM_SEARCH_*`` environment variables.

    Tokenizer fields are validated through ``NgramConfig`` at startup so an
    invalid scheme fails before any index is opened.
    """

    model_config = SettingsConfigDict(
        env_prefix="NGRAM_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    index_name: str = Field(default="default", min_length=1, description="Label used on metrics and spans")

    # Tokenizer
    ngram_n: int = Field(default=3, ge=2, description="N-gram window width")
    padding_left: str = Field(default="$", description="Padding symbol for word-start n-grams")
    padding_right: str = Field(default="!", description="Padding symbol for word-end n-grams")
    padding_middle: str = Field(default="_", description="Padding symbol for n-grams spanning a word gap")

    # Query engine
    candidate_pool_size: int = Field(default=200, ge=1, description="Maximum candidates tracked per query")
    bm25_k1: float = Field(default=1.2, gt=0.0, description="BM25 term frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization strength")
    coverage_weight: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Share of the final quality taken from query n-gram coverage",
    )
    default_min_quality: float = Field(default=0.0, description="Quality threshold when callers pass none")

    # Index maintenance
    prune_empty_terms: bool = Field(default=True, description="Delete term entries once no document uses them")

    # Storage
    storage_backend: Literal["memory", "sqlite"] = Field(default="memory", description="Index storage backend")
    sqlite_path: str = Field(default="ngram_index.db", description="Database file for the sqlite backend")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @model_validator(mode="after")
    def _check_tokenizer(self) -> "Settings":
        try:
            self.ngram_config()
        except ValidationError as exc:
            raise ValueError(f"Invalid tokenizer configuration: {exc.errors()[0]['msg']}") from exc
        if self.storage_backend == "sqlite" and not self.sqlite_path.strip():
            raise ValueError("NGRAM_SEARCH_SQLITE_PATH must be set when NGRAM_SEARCH_STORAGE_BACKEND=sqlite")
        return self

    def ngram_config(self) -> NgramConfig:
        return NgramConfig(
            n=self.ngram_n,
            padding_left=self.padding_left,
            padding_right=self.padding_right,
            padding_middle=self.padding_middle,
        )
