"""Configuration for caption extraction and the AI fallback.

Uses Pydantic settings for environment-based configuration,
following the same pattern as other service configs in the project.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExtractionConfig(BaseSettings):
    """
    Configuration for pattern extraction, pre-filtering and AI fallback.

    All settings can be overridden via environment variables with EXTRACTION_ prefix.
    Example: EXTRACTION_AI_PROVIDER=openai
    """

    model_config = SettingsConfigDict(
        env_prefix="EXTRACTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pattern extraction
    messy_field_length: int = Field(
        default=100,
        ge=10,
        le=1000,
        description="Venue or title longer than this is treated as a messy extraction",
    )
    title_max_length: int = Field(default=100, ge=10, le=500)
    base_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Confidence of a regex result before per-field bonuses",
    )

    # Historical post rejection
    historical_post_age_days: int = Field(
        default=45,
        ge=1,
        le=3650,
        description="Posts older than this with a past event date are rejected as historical",
    )

    # AI fallback gating
    short_caption_length: int = Field(
        default=100,
        ge=0,
        description="Captions shorter than this may carry their details in the image",
    )
    emoji_text_length: int = Field(
        default=50,
        ge=0,
        description="Text left after removing emoji and hashtags below this means image-heavy",
    )
    ai_accept_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="AI results at or above this confidence become the primary result",
    )
    ai_review_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="AI-primary results below this confidence are force-flagged for review",
    )
    training_min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Accepted AI results at or above this confidence feed the pattern trainer",
    )

    # AI collaborator
    ai_provider: Literal["http", "openai", "anthropic", "disabled"] = Field(
        default="http",
        description="Backend used for AI extraction",
    )
    ai_endpoint_url: str | None = Field(
        default=None,
        description="URL of the AI extraction service when ai_provider is http",
    )
    ai_api_key: SecretStr | None = Field(default=None, description="Bearer key for the AI service")
    openai_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    ai_timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)
    ai_max_retries: int = Field(default=2, ge=0, le=10)
    ai_retry_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)
    ai_retry_max_delay: float = Field(default=8.0, ge=0.0, le=120.0)
    circuit_failure_threshold: int = Field(default=5, ge=1, le=100)
    circuit_recovery_timeout: float = Field(default=60.0, ge=1.0, le=3600.0)

    @property
    def ai_enabled(self) -> bool:
        """Whether any AI backend is configured."""
        if self.ai_provider == "disabled":
            return False
        if self.ai_provider == "http":
            return bool(self.ai_endpoint_url)
        if self.ai_provider == "openai":
            return self.openai_api_key is not None
        return self.anthropic_api_key is not None
