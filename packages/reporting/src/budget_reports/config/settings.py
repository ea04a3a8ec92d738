"""Configuration settings for the report pipeline."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Analysis provider selection
    analysis_provider: Literal["gemini", "claude", "openai"] = Field(
        default="gemini", validation_alias="ANALYSIS_PROVIDER"
    )

    # LLM API keys (only the selected provider's key is required)
    google_api_key: SecretStr | None = Field(default=None, validation_alias="GOOGLE_API_KEY")
    anthropic_api_key: SecretStr | None = Field(
        default=None, validation_alias="ANTHROPIC_API_KEY"
    )
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")

    # Model selections
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    claude_model: str = Field(default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL")
    gpt_model: str = Field(default="gpt-4o-mini", validation_alias="GPT_MODEL")

    # LLM parameters
    llm_max_tokens: int = Field(default=4096, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")

    # Pipeline
    report_debounce_seconds: float = Field(
        default=5.0, ge=0.0, validation_alias="REPORT_DEBOUNCE_SECONDS"
    )
    aggregation_max_concurrency: int = Field(
        default=8, ge=1, validation_alias="AGGREGATION_MAX_CONCURRENCY"
    )
    trend_months: int = Field(default=6, ge=1, le=24, validation_alias="TREND_MONTHS")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
