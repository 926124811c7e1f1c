"""Centralized configuration for micro-search using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from micro_search.search.analyzers import DEFAULT_STOPWORDS


class Settings(BaseSettings):
    """Strictly typed engine configuration loaded from environment variables.

    Every field can be overridden with a ``MICRO_SEARCH_`` prefixed variable,
    e.g. ``MICRO_SEARCH_DEFAULT_PAGE_SIZE=50``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MICRO_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage layout
    index_root: Path = Field(default=Path("index"), description="Directory holding the snapshot of a local index")
    snapshot_filename: str = Field(default="index.gz", min_length=1, description="Key of the primary snapshot blob")
    export_dirname: str = Field(default="export", min_length=1, description="Sub-directory used by export()")
    compression_level: int = Field(default=6, ge=0, le=9, description="gzip compression level for snapshots")

    # Query defaults
    default_page_size: int = Field(default=20, ge=1, description="Page size used when a request has no PAGE")

    # Analysis
    ngram_lengths: list[int] = Field(default=[1, 2], description="Word n-gram widths emitted by the tokenizer")
    stopwords: str = Field(
        default=",".join(DEFAULT_STOPWORDS),
        description="Comma-separated stopwords removed from non-verbatim fields",
    )

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("ngram_lengths")
    @classmethod
    def _check_ngram_lengths(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("ngram_lengths must contain at least one width")
        if any(width < 1 for width in value):
            raise ValueError("ngram_lengths must only contain positive widths")
        return sorted(set(value))

    def get_stopwords(self) -> list[str]:
        """Get the stopword list (comma-separated in the environment)."""
        return [word.strip().lower() for word in self.stopwords.split(",") if word.strip()]

    def snapshot_path(self, root: Path | None = None) -> Path:
        """Return the primary snapshot path below ``root`` (defaults to ``index_root``)."""
        return (root or self.index_root) / self.snapshot_filename

    def export_path(self, root: Path | None = None) -> Path:
        """Return the default export path below ``root`` (defaults to ``index_root``)."""
        return (root or self.index_root) / self.export_dirname / self.snapshot_filename
