"""Configuration models and YAML loader for the matching engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/podmatch.db"


class BatchConfig(BaseModel):
    """Defaults for the batch runner."""

    max_concurrent: int = Field(default=5, ge=1, le=50)
    min_match_score: float = Field(default=0.6, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    max_results: int = Field(default=20, ge=1)


class TieredConfig(BaseModel):
    """Sufficiency thresholds and catalog fallback behaviour."""

    min_matches: int = Field(default=3, ge=1)
    min_score: float = Field(default=0.7, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    min_topic_diversity: int = Field(default=2, ge=1)
    force_catalog_search: bool = False
    max_catalog_results: int = Field(default=10, ge=1, le=100)


class CatalogConfig(BaseModel):
    """External catalog (search) provider settings."""

    provider: str = "listennotes"
    base_url: str = "https://listen-api.listennotes.com/api/v2"
    api_key_env: str = "LISTEN_NOTES_API_KEY"
    language: str = "English"
    timeout_seconds: float = Field(default=5.0, gt=0.0, le=30.0)
    max_retry_delay_seconds: float = Field(default=10.0, ge=0.0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v


class AnalyzerConfig(BaseModel):
    """LLM feature analyzer settings."""

    provider: str = "anthropic"
    model: str | None = None
    freshness_days: int = Field(default=30, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    tiered: TieredConfig = Field(default_factory=TieredConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
