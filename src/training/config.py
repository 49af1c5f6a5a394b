"""Configuration for the pattern trainer.

Uses Pydantic settings for environment-based configuration,
following the same pattern as other service configs in the project.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrainingConfig(BaseSettings):
    """
    Configuration for ground truth, pattern health and suggestions.

    All settings can be overridden via environment variables with TRAINING_ prefix.
    Example: TRAINING_MIN_SAMPLES=20
    """

    model_config = SettingsConfigDict(
        env_prefix="TRAINING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Run the trainer after accepted AI extractions")

    # Pattern health
    min_samples: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Scored uses needed before a pattern can be deactivated",
    )
    min_success_rate: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Patterns below this success rate are deactivated",
    )

    # Suggestions
    suggestions_enabled: bool = True
    suggestion_min_occurrences: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Occurrences before a suggestion is surfaced for approval",
    )
    suggestion_priority: int = Field(
        default=95,
        ge=0,
        le=1000,
        description="Priority given to patterns created from approved suggestions",
    )
    max_sample_length: int = Field(default=200, ge=20, le=2000)
