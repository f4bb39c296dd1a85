from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from siftly.exceptions import ConfigError


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "Siftly"
    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"


class FieldSpec(BaseModel):
    """One searchable attribute of an entity type and its relative weight."""

    key: str
    weight: float = 1.0


def _default_fields() -> Dict[str, List[FieldSpec]]:
    # Names outweigh descriptions 2:1
    return {
        "task": [FieldSpec(key="name", weight=2), FieldSpec(key="description", weight=1)],
        "list": [FieldSpec(key="name", weight=2)],
        "label": [FieldSpec(key="name", weight=2)],
    }


class SearchConfig(BaseModel):
    """Matching thresholds, result limits and the default field model."""

    min_query_length: int = Field(default=2, ge=1)
    max_query_length: int = Field(default=256, ge=1)
    # Cost thresholds: 0 accepts only exact matches, 1 accepts anything
    threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    quick_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    quick_limit: int = Field(default=5, gt=0)
    default_limit_per_type: int = Field(default=20, gt=0)
    default_limit_total: int = Field(default=50, gt=0)
    max_limit: int = Field(default=1000, gt=0)
    suggestion_limit: int = Field(default=10, gt=0)
    # Truthy values on any of these attributes mark a record soft-deleted
    soft_delete_keys: List[str] = Field(
        default_factory=lambda: ["is_deleted", "deleted_at", "is_completed"]
    )
    fields: Dict[str, List[FieldSpec]] = Field(default_factory=_default_fields)


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="SIFTLY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    search: SearchConfig = SearchConfig()


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    try:
        return Settings()  # type: ignore[call-arg]
    except (ValidationError, SettingsError) as exc:
        raise ConfigError(f"Invalid Siftly settings: {exc}") from exc


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level to the package logger."""
    settings = settings or load_settings()
    level = logging.getLevelName(settings.app.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger = logging.getLogger("siftly")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
