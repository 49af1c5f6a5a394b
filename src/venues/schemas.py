"""Schema definitions for venue resolution.

Provides the KnownVenue curated record, the VenueMatch resolution outcome
with its provenance, per-stage attempt records for auditing, and the
GeocodeResult model validating geocoder responses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MatchType = Literal["exact", "alias", "word", "partial", "fuzzy", "geocoded"]

MatchSource = Literal["known_venues", "regional_cache", "geocoder"]

# Chain stages in resolution order
STAGE_KNOWN_EXACT = 1
STAGE_KNOWN_ALIAS = 2
STAGE_KNOWN_WORD = 3
STAGE_KNOWN_FUZZY = 4
STAGE_REGIONAL_EXACT = 5
STAGE_REGIONAL_FUZZY = 6
STAGE_GEOCODER = 7

STAGE_NAMES: dict[int, str] = {
    STAGE_KNOWN_EXACT: "known_exact",
    STAGE_KNOWN_ALIAS: "known_alias",
    STAGE_KNOWN_WORD: "known_word",
    STAGE_KNOWN_FUZZY: "known_fuzzy",
    STAGE_REGIONAL_EXACT: "regional_exact",
    STAGE_REGIONAL_FUZZY: "regional_fuzzy",
    STAGE_GEOCODER: "geocoder",
}


@dataclass
class KnownVenue:
    """
    Curated venue identity.

    Attributes:
        name: Canonical venue name (unique).
        aliases: Alternative spellings, including names learned from
            manual corrections.
        instagram_handle: Handle of the venue's own account, used for
            source authority.
        correction_count: Times this venue was confirmed by a manual
            correction.
    """

    name: str
    venue_id: str | None = None
    aliases: list[str] = field(default_factory=list)
    address: str | None = None
    city: str | None = None
    lat: float | None = None
    lng: float | None = None
    instagram_handle: str | None = None
    correction_count: int = 0
    learned_from_corrections: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass(frozen=True)
class VenueMatch:
    """
    Resolution outcome for one venue reference.

    Every match carries the chain stage that produced it so reviewers can
    audit where the coordinates came from.
    """

    query: str
    venue_name: str
    match_type: str
    source: str
    stage: int
    confidence: float
    lat: float | None = None
    lng: float | None = None
    formatted_address: str | None = None
    city: str | None = None
    known_venue_id: str | None = None
    matched_on: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def is_known_venue(self) -> bool:
        return self.source == "known_venues"

    @property
    def stage_name(self) -> str:
        return STAGE_NAMES.get(self.stage, "unknown")

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "venue_name": self.venue_name,
            "match_type": self.match_type,
            "source": self.source,
            "stage": self.stage,
            "stage_name": self.stage_name,
            "confidence": self.confidence,
            "lat": self.lat,
            "lng": self.lng,
            "formatted_address": self.formatted_address,
            "city": self.city,
            "known_venue_id": self.known_venue_id,
            "matched_on": self.matched_on,
        }


@dataclass(frozen=True)
class StageAttempt:
    """One stage of the resolver chain: hit or miss, with the match type on hits."""

    stage: int
    hit: bool
    match_type: str | None = None
    detail: str | None = None

    @property
    def stage_name(self) -> str:
        return STAGE_NAMES.get(self.stage, "unknown")


@dataclass(frozen=True)
class VenueResolution:
    """Final match (if any) plus the trail of attempted stages."""

    query: str
    match: VenueMatch | None
    attempts: tuple[StageAttempt, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.match is not None


class GeocodeResult(BaseModel):
    """Validated geocoding service response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    is_valid: bool = Field(default=False, validation_alias=AliasChoices("is_valid", "isValid"))
    lat: float | None = None
    lng: float | None = None
    formatted_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("formatted_address", "formattedAddress"),
    )
    confidence: float = 0.0

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, value))

    @property
    def usable(self) -> bool:
        """Valid and carrying both coordinates."""
        return self.is_valid and self.lat is not None and self.lng is not None
