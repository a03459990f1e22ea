"""Configuration management for fine-format.

This module provides configuration classes using pydantic-settings
for environment variable management and validation.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _key_field(name: str, description: str) -> Any:
    return Field(
        default=None,
        validation_alias=AliasChoices(name, f"FINE_FORMAT_{name}"),
        description=description,
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All non-credential settings can be configured via environment variables
    with the FINE_FORMAT_ prefix. Credentials use the plain provider variable
    names (``GEMINI_API_KEY``, ``GEMINI_API_KEY_2``...), the prefixed form is
    also accepted.

    Example:
        >>> # export GEMINI_API_KEY=AIza...
        >>> # export FINE_FORMAT_QA_PAIR_TARGET=50
        >>>
        >>> settings = Settings()
        >>> settings.gemini_keys()
        ['AIza...']

    Environment Variables:
        GEMINI_API_KEY, GEMINI_API_KEY_2, GEMINI_API_KEY_3: Primary provider keys
        OPENROUTER_API_KEY, OPENROUTER_API_KEY_2, OPENROUTER_API_KEY_3: Secondary provider keys
        FINE_FORMAT_LOG_LEVEL: Logging level (default: INFO)
        FINE_FORMAT_TEXT_TIMEOUT_SECONDS: Timeout for text-only requests (default: 45.0)
        FINE_FORMAT_BINARY_TIMEOUT_SECONDS: Timeout for binary-bearing requests (default: 25.0)
        FINE_FORMAT_VALIDATION_CONFIDENCE_THRESHOLD: Minimum validation confidence (default: 0.7)
    """

    model_config = SettingsConfigDict(
        env_prefix="FINE_FORMAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Credentials, in priority order
    gemini_api_key: str | None = _key_field("GEMINI_API_KEY", "Primary Gemini API key")
    gemini_api_key_2: str | None = _key_field("GEMINI_API_KEY_2", "Second Gemini API key")
    gemini_api_key_3: str | None = _key_field("GEMINI_API_KEY_3", "Third Gemini API key")
    openrouter_api_key: str | None = _key_field("OPENROUTER_API_KEY", "Primary OpenRouter API key")
    openrouter_api_key_2: str | None = _key_field("OPENROUTER_API_KEY_2", "Second OpenRouter API key")
    openrouter_api_key_3: str | None = _key_field("OPENROUTER_API_KEY_3", "Third OpenRouter API key")

    # Gemini settings
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL for the Gemini REST API",
    )
    gemini_model: str = Field(default="gemini-2.0-flash-exp", description="Gemini model id")

    # OpenRouter settings
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL for the OpenRouter API",
    )
    openrouter_model: str = Field(
        default="nvidia/llama-3.1-nemotron-ultra-253b-v1:free",
        description="OpenRouter model id used for gap filling",
    )
    openrouter_referer: str = Field(
        default="https://fine-format.netlify.app",
        description="HTTP-Referer header sent to OpenRouter",
    )
    openrouter_title: str = Field(
        default="Fine Format - AI Dataset Generator",
        description="X-Title header sent to OpenRouter",
    )

    # Timeouts
    text_timeout_seconds: float = Field(default=45.0, gt=0, description="Timeout for text-only requests")
    binary_timeout_seconds: float = Field(
        default=25.0,
        gt=0,
        description="Timeout for requests carrying embedded binary content",
    )
    openrouter_timeout_seconds: float = Field(default=90.0, gt=0, description="Timeout for OpenRouter requests")
    max_binary_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Maximum decoded size of inline binary content per request",
    )
    max_output_tokens_cap: int = Field(default=20000, ge=1, description="Upper bound for maxOutputTokens")

    # Generation targets
    qa_pair_target: int = Field(default=100, ge=1, description="Q&A pairs requested from original content")
    synthetic_pair_target: int = Field(default=75, ge=1, description="Synthetic pairs requested across all gaps")
    incorrect_answer_ratio: float = Field(
        default=0.08,
        gt=0,
        lt=1,
        description="Share of intentionally incorrect answers",
    )
    max_pairs_per_gap: int = Field(default=15, ge=1, description="Upper bound of synthetic pairs per gap")
    max_knowledge_gaps: int = Field(default=10, ge=1, description="Upper bound of gaps kept from analysis")
    min_content_length: int = Field(default=300, ge=1, description="Minimum combined content length")
    validation_confidence_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Minimum validator confidence for a synthetic pair to be kept",
    )

    # Backpressure
    gap_delay_seconds: float = Field(default=1.0, ge=0, description="Delay between per-gap calls")
    validation_delay_seconds: float = Field(default=0.5, ge=0, description="Delay between per-pair validations")

    # General settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    def gemini_keys(self) -> list[str]:
        """Return configured Gemini keys in priority order, blanks removed."""
        return _non_blank([self.gemini_api_key, self.gemini_api_key_2, self.gemini_api_key_3])

    def openrouter_keys(self) -> list[str]:
        """Return configured OpenRouter keys in priority order, blanks removed."""
        return _non_blank([self.openrouter_api_key, self.openrouter_api_key_2, self.openrouter_api_key_3])


def _non_blank(values: list[str | None]) -> list[str]:
    return [value.strip() for value in values if value and value.strip()]
