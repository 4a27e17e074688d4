"""
Application settings and configuration management.

This module handles environment variables, API keys, and the tunables of the
search pipeline (concurrency, timeouts, thresholds, fallback policy) using
Pydantic settings management for type safety and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Keys
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )

    # Source Catalog
    default_country: str = Field(default="PE", alias="DEFAULT_COUNTRY")
    sources_config_path: Optional[Path] = Field(default=None, alias="SOURCES_CONFIG_PATH")

    # Fetching
    live_fetch_enabled: bool = Field(default=False, alias="LIVE_FETCH_ENABLED")
    synthetic_fallback_enabled: bool = Field(default=True, alias="SYNTHETIC_FALLBACK_ENABLED")
    synthetic_seed: int = Field(default=42, alias="SYNTHETIC_SEED")
    max_concurrent_fetches: int = Field(default=5, ge=1, alias="MAX_CONCURRENT_FETCHES")
    source_timeout_seconds: float = Field(default=20.0, gt=0, alias="SOURCE_TIMEOUT_SECONDS")
    request_timeout_seconds: int = Field(default=15, alias="REQUEST_TIMEOUT_SECONDS")
    max_retries: int = Field(default=3, alias="MAX_RETRIES")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        alias="USER_AGENT",
    )

    # Ranking Thresholds (0-100 scale)
    min_confidence_threshold: int = Field(default=50, ge=0, le=100, alias="MIN_CONFIDENCE_THRESHOLD")
    exact_match_threshold: int = Field(default=70, ge=0, le=100, alias="EXACT_MATCH_THRESHOLD")

    # Product-Match Validation
    ai_validation_enabled: bool = Field(default=False, alias="AI_VALIDATION_ENABLED")
    claude_model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="CLAUDE_MODEL"
    )
    claude_max_tokens: int = Field(default=2000, alias="CLAUDE_MAX_TOKENS")
    validation_temperature: float = Field(default=0.1, alias="VALIDATION_TEMPERATURE")

    # Cache Settings
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_ttl_seconds: int = Field(default=1800, alias="CACHE_TTL_SECONDS")

    @field_validator("default_country", mode="before")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        """Country codes are handled upper-case everywhere."""
        return str(v).strip().upper()

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def validate_anthropic_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Anthropic API key format."""
        if not v:
            return None
        if not str(v).startswith("sk-"):
            raise ValueError("Invalid Anthropic API key format")
        return v

    def get_validator_provider(self) -> str:
        """Determine which product-match validator to use."""
        if self.ai_validation_enabled and self.anthropic_api_key:
            return "claude"
        return "heuristic"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
