"""Schema definitions for caption extraction.

Provides the Pattern dataclass for the mutable pattern store, the
immutable ExtractionResult produced per extraction attempt, and the
AIExtraction model that validates AI collaborator payloads at the
boundary.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.extraction.normalizer import DateNormalizer, parse_time_string

PatternType = Literal["date", "time", "venue", "price", "signup_url", "vendor"]

VALID_PATTERN_TYPES: set[str] = {"date", "time", "venue", "price", "signup_url", "vendor"}

PatternSource = Literal["default", "manual", "ai_learned"]

VALID_PATTERN_SOURCES: set[str] = {"default", "manual", "ai_learned"}

ExtractionMethod = Literal["regex", "ai", "ai_corrected", "ocr_ai"]

FieldSource = Literal["regex", "ai", "both"]

# Fields compared between regex and AI results
COMPARED_FIELDS: tuple[str, ...] = ("event_date", "event_time", "venue_name", "price", "signup_url")

# Field name → pattern type that extracts it
FIELD_PATTERN_TYPES: dict[str, str] = {
    "event_date": "date",
    "event_time": "time",
    "venue_name": "venue",
    "price": "price",
    "signup_url": "signup_url",
}

VALID_CATEGORIES: set[str] = {
    "nightlife",
    "music",
    "art_culture",
    "markets",
    "food_drink",
    "workshops",
    "fitness",
    "community",
    "other",
}

EVENT_STATUSES: set[str] = {"confirmed", "rescheduled", "cancelled", "postponed", "tentative"}
AVAILABILITY_STATUSES: set[str] = {"available", "sold_out", "waitlist", "limited", "few_left"}
LOCATION_STATUSES: set[str] = {"confirmed", "tba", "secret", "dm_for_details"}

# Reject reasons for hard rejects
REJECT_VENDOR = "vendor_post"
REJECT_RECURRING = "recurring_schedule"
REJECT_EXCLUDED = "excluded_content"
REJECT_NO_SIGNALS = "no_event_signals"
REJECT_EVENT_BEFORE_POST = "historical_event_before_post"
REJECT_OLD_POST = "historical_old_post_past_event"
REJECT_AI_NOT_EVENT = "ai_not_event"
REJECT_PROCESSING_ERROR = "processing_error"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_pattern_id() -> str:
    return f"pattern_{uuid4().hex[:12]}"


@dataclass
class Pattern:
    """
    A typed, prioritized regex rule for extracting one field.

    Patterns are mutable store entries: their counters move with
    training feedback and they may be deactivated, but they are never
    deleted.

    Attributes:
        pattern_type: Field family this pattern extracts.
        pattern_regex: Regex source. Named groups carry the field value.
        pattern_id: Stable identifier recorded on extraction results.
        description: Human-readable note.
        priority: Higher priorities are tried first.
        confidence_score: Health score in [0, 1], second ordering key.
        success_count: Agreements with accepted AI results (monotonic).
        failure_count: Contradictions by accepted AI results (monotonic).
        is_active: Inactive patterns are skipped by the extractor.
        is_valid: False once the regex failed to compile.
        source: Where the pattern came from.
    """

    pattern_type: str
    pattern_regex: str
    pattern_id: str = field(default_factory=_new_pattern_id)
    description: str | None = None
    priority: int = 100
    confidence_score: float = 0.5
    success_count: int = 0
    failure_count: int = 0
    is_active: bool = True
    is_valid: bool = True
    source: str = "default"
    last_used_at: datetime | None = None
    created_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if self.pattern_type not in VALID_PATTERN_TYPES:
            raise ValueError(f"Invalid pattern_type: {self.pattern_type}")
        if self.source not in VALID_PATTERN_SOURCES:
            raise ValueError(f"Invalid pattern source: {self.source}")
        if not self.pattern_regex:
            raise ValueError("pattern_regex must not be empty")
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(f"confidence_score must be in [0, 1], got {self.confidence_score}")
        if self.success_count < 0 or self.failure_count < 0:
            raise ValueError("Pattern counters must be non-negative")

    @property
    def total_uses(self) -> int:
        return self.success_count + self.failure_count

    @property
    def success_rate(self) -> float | None:
        """Share of successful uses, or None when the pattern was never scored."""
        if self.total_uses == 0:
            return None
        return self.success_count / self.total_uses


@dataclass(frozen=True)
class FieldConflict:
    """A field where the regex and AI results disagree."""

    field_name: str
    regex_value: Any
    ai_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field_name, "regex": self.regex_value, "ai": self.ai_value}


@dataclass(frozen=True)
class AdditionalDate:
    """Another occurrence of a multi-date event, possibly at another venue."""

    event_date: str
    event_time: str | None = None
    venue_name: str | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """
    Structured attributes extracted from one caption.

    Immutable: each extraction attempt produces a new result and later
    stages derive new results with ``evolve``. Dates are ISO strings
    (YYYY-MM-DD) and times are 24-hour HH:MM.
    """

    title: str | None = None
    event_date: str | None = None
    event_end_date: str | None = None
    event_time: str | None = None
    end_time: str | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    price: float | None = None
    price_min: float | None = None
    price_max: float | None = None
    price_notes: str | None = None
    is_free: bool | None = None
    signup_url: str | None = None
    category: str | None = None
    is_event: bool = True
    needs_review: bool = False
    confidence: float = 0.0
    extraction_method: str = "regex"
    reject_reason: str | None = None
    event_status: str | None = None
    availability_status: str | None = None
    location_status: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    additional_dates: tuple[AdditionalDate, ...] = ()
    pattern_ids: dict[str, str] = field(default_factory=dict, hash=False)
    sources: dict[str, str] = field(default_factory=dict, hash=False)
    conflicts: tuple[FieldConflict, ...] = ()
    reasoning: str | None = None
    ocr_text: str | None = None
    ai_reference: AIExtraction | None = field(default=None, compare=False, hash=False)

    def evolve(self, **changes: Any) -> ExtractionResult:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    @property
    def has_critical_fields(self) -> bool:
        """Date, time and venue are all present."""
        return bool(self.event_date and self.event_time and self.venue_name)

    @property
    def missing_critical_count(self) -> int:
        return sum(1 for v in (self.event_date, self.event_time, self.venue_name) if not v)

    @property
    def is_rejected(self) -> bool:
        return self.reject_reason is not None

    @classmethod
    def rejected(cls, reason: str, title: str | None = None) -> ExtractionResult:
        """Hard reject: not an event, no review flag."""
        return cls(title=title, is_event=False, needs_review=False, reject_reason=reason)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "title": self.title,
            "event_date": self.event_date,
            "event_end_date": self.event_end_date,
            "event_time": self.event_time,
            "end_time": self.end_time,
            "venue_name": self.venue_name,
            "venue_address": self.venue_address,
            "price": self.price,
            "price_min": self.price_min,
            "price_max": self.price_max,
            "price_notes": self.price_notes,
            "is_free": self.is_free,
            "signup_url": self.signup_url,
            "category": self.category,
            "is_event": self.is_event,
            "needs_review": self.needs_review,
            "confidence": self.confidence,
            "extraction_method": self.extraction_method,
            "reject_reason": self.reject_reason,
            "event_status": self.event_status,
            "availability_status": self.availability_status,
            "location_status": self.location_status,
            "is_recurring": self.is_recurring,
            "recurrence_pattern": self.recurrence_pattern,
            "additional_dates": [dataclasses.asdict(d) for d in self.additional_dates],
            "pattern_ids": dict(self.pattern_ids),
            "sources": dict(self.sources),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "reasoning": self.reasoning,
        }


class AIAdditionalDate(BaseModel):
    """An extra occurrence reported by the AI collaborator."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
    )

    date: str
    time: str | None = None
    venue_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("venue_name", "venueName", "venue"),
    )

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> str:
        parsed = DateNormalizer().parse(str(v)) if v else None
        if parsed is None:
            raise ValueError(f"unparseable date: {v!r}")
        return parsed

    @field_validator("time", mode="before")
    @classmethod
    def coerce_time(cls, v: Any) -> str | None:
        return parse_time_string(str(v)) if v else None


class AIExtraction(BaseModel):
    """
    Validated AI collaborator response.

    Loosely-typed payloads are coerced here: unparseable dates and times
    become None, confidence is clamped into [0, 1], and unknown keys are
    ignored. Accepts camelCase keys from the collaborator.
    """

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    is_event: bool = True
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "eventTitle"))
    event_date: str | None = None
    event_end_date: str | None = None
    event_time: str | None = None
    end_time: str | None = None
    venue_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("venue_name", "venueName", "locationName"),
    )
    venue_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("venue_address", "venueAddress", "locationAddress"),
    )
    price: float | None = None
    price_min: float | None = None
    price_max: float | None = None
    price_notes: str | None = None
    is_free: bool | None = None
    signup_url: str | None = None
    category: str | None = None
    event_status: str | None = None
    availability_status: str | None = None
    location_status: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    additional_dates: list[AIAdditionalDate] = Field(default_factory=list)
    confidence: float = 0.0
    reasoning: str | None = None
    ocr_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ocr_text", "ocrText", "ocrTextExtracted"),
    )
    extraction_method: Literal["ai", "ocr_ai"] = "ai"

    @field_validator("event_date", "event_end_date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return DateNormalizer().parse(str(v))

    @field_validator("event_time", "end_time", mode="before")
    @classmethod
    def coerce_time(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return parse_time_string(str(v))

    @field_validator("price", "price_min", "price_max", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> float | None:
        if v in (None, ""):
            return None
        if isinstance(v, str):
            cleaned = v.replace(",", "").replace("₱", "").replace("PHP", "").strip()
            try:
                return float(cleaned)
            except ValueError:
                return None
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, value))

    @field_validator("extraction_method", mode="before")
    @classmethod
    def coerce_method(cls, v: Any) -> str:
        return "ocr_ai" if v in ("ocr_ai", "ocr", "vision") else "ai"

    @field_validator("category", mode="before")
    @classmethod
    def lower_category(cls, v: Any) -> str | None:
        return str(v).strip().lower() if v else None

    @field_validator("additional_dates", mode="before")
    @classmethod
    def drop_bad_dates(cls, v: Any) -> list[Any]:
        """Skip additional dates that cannot be parsed instead of failing the payload."""
        if not isinstance(v, list):
            return []
        kept = []
        for item in v:
            if not isinstance(item, dict):
                continue
            raw = item.get("date")
            if raw and DateNormalizer().parse(str(raw)):
                kept.append(item)
        return kept

    @field_validator("ocr_text", mode="before")
    @classmethod
    def join_ocr_lines(cls, v: Any) -> str | None:
        """The hosted service reports OCR text as a list of lines."""
        if isinstance(v, list):
            lines = [str(line).strip() for line in v if str(line).strip()]
            return "\n".join(lines) or None
        return v or None
