"""Configuration for validation, review tiers and duplicate handling.

Uses Pydantic settings for environment-based configuration,
following the same pattern as other service configs in the project.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ValidationConfig(BaseSettings):
    """
    Configuration for data validation and review-tier assignment.

    All settings can be overridden via environment variables with VALIDATION_ prefix.
    Example: VALIDATION_READY_CONFIDENCE=0.9
    """

    model_config = SettingsConfigDict(
        env_prefix="VALIDATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Tier thresholds
    ready_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for the ready tier",
    )
    known_venue_ready_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Ready-tier confidence when the venue is a curated known venue",
    )
    quick_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for the quick-review tier",
    )
    reject_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Confidence below this is rejected outright",
    )
    max_warnings: int = Field(
        default=4,
        ge=1,
        le=20,
        description="This many validation warnings or more rejects the post",
    )
    quick_max_warnings: int = Field(default=2, ge=0, le=20)
    ready_requires_coordinates: bool = Field(
        default=True,
        description="Ready tier needs a geocoded venue",
    )

    # Date plausibility
    max_days_ahead: int = Field(default=365, ge=30, le=1000)
    max_range_days: int = Field(default=60, ge=1, le=365)

    # Price plausibility
    max_price: float = Field(default=100000.0, gt=0.0)

    # Duplicate detection
    similarity_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum title similarity to treat same venue/date posts as one event",
    )
    day_window: int = Field(
        default=1,
        ge=0,
        le=7,
        description="Candidate events are searched within +/- this many days",
    )
