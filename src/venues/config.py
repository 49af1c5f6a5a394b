"""Configuration for the venue resolver chain.

Uses Pydantic settings for environment-based configuration,
following the same pattern as other service configs in the project.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class VenueConfig(BaseSettings):
    """
    Configuration for known-venue matching, the regional cache and the geocoder.

    All settings can be overridden via environment variables with VENUES_ prefix.
    Example: VENUES_KNOWN_FUZZY_THRESHOLD=0.9
    """

    model_config = SettingsConfigDict(
        env_prefix="VENUES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Known venue matching
    known_fuzzy_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for a fuzzy known-venue match",
    )
    fuzzy_confidence_factor: float = Field(
        default=0.9,
        gt=0.0,
        lt=1.0,
        description="Fuzzy similarity is scaled by this so fuzzy hits rank below exact ones",
    )
    min_partial_length: int = Field(
        default=4,
        ge=1,
        description="Shortest normalized name allowed in substring (partial) matching",
    )

    # Regional cache
    regional_cache_path: str | None = Field(
        default="data/ncr_venues.json",
        description="JSON file with the regional venue cache; None disables it",
    )
    regional_fuzzy_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for a fuzzy regional-cache match",
    )

    # External geocoder
    geocoder_url: str | None = Field(
        default=None,
        description="URL of the geocoding service; None disables the geocoder stage",
    )
    geocoder_api_key: SecretStr | None = None
    geocoder_timeout_seconds: float = Field(default=15.0, ge=1.0, le=120.0)
    geocoder_max_retries: int = Field(default=2, ge=0, le=10)
    geocoder_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)
    geocoder_max_delay: float = Field(default=3.0, ge=0.0, le=60.0)
    circuit_failure_threshold: int = Field(default=5, ge=1, le=100)
    circuit_recovery_timeout: float = Field(default=60.0, ge=1.0, le=3600.0)
