"""Schema definitions for the pattern trainer."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from src.extraction.schemas import FieldConflict

SuggestionStatus = Literal["pending", "approved", "rejected"]

VALID_SUGGESTION_STATUSES: set[str] = {"pending", "approved", "rejected"}


@dataclass(frozen=True)
class FieldComparison:
    """
    How the regex and AI results relate for one field.

    ``source`` is "both" when they agree, "ai" when only the AI found a
    value or the two disagree (the accepted AI value wins), "regex" when
    only the pattern extractor found one.
    """

    field_name: str
    regex_value: Any
    ai_value: Any
    source: str
    pattern_id: str | None = None

    @property
    def agreed(self) -> bool:
        return self.source == "both"

    @property
    def conflicting(self) -> bool:
        return self.regex_value is not None and self.ai_value is not None and not self.agreed

    @property
    def regex_missed(self) -> bool:
        return self.regex_value is None and self.ai_value is not None


@dataclass(frozen=True)
class ComparisonReport:
    """Per-field comparison of a regex result against an accepted AI result."""

    fields: tuple[FieldComparison, ...] = ()

    @property
    def sources(self) -> dict[str, str]:
        return {f.field_name: f.source for f in self.fields}

    @property
    def conflicts(self) -> tuple[FieldConflict, ...]:
        return tuple(
            FieldConflict(f.field_name, f.regex_value, f.ai_value)
            for f in self.fields
            if f.conflicting
        )

    @property
    def agreeing_pattern_ids(self) -> list[str]:
        return sorted({f.pattern_id for f in self.fields if f.agreed and f.pattern_id})

    @property
    def contradicted_pattern_ids(self) -> list[str]:
        return sorted({f.pattern_id for f in self.fields if f.conflicting and f.pattern_id})


@dataclass
class GroundTruthRecord:
    """Regex, AI and final results for one post, kept for retrospective analysis."""

    post_id: str
    caption: str
    regex_result: dict[str, Any]
    ai_result: dict[str, Any]
    final_result: dict[str, Any]
    sources: dict[str, str] = field(default_factory=dict)
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    ai_confidence: float | None = None
    record_id: int | None = None
    created_at: datetime | None = None


def _new_suggestion_id() -> str:
    return f"suggestion_{uuid.uuid4().hex[:12]}"


@dataclass
class PatternSuggestion:
    """
    A proposed extraction pattern awaiting human review.

    Repeated proposals of the same regex while pending increment
    ``occurrence_count`` instead of creating a new suggestion.
    """

    pattern_type: str
    suggested_regex: str
    sample_text: str
    correct_value: str
    suggestion_id: str = field(default_factory=_new_suggestion_id)
    post_id: str | None = None
    occurrence_count: int = 1
    status: str = "pending"
    created_pattern_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen_at: datetime | None = None
    reviewed_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_SUGGESTION_STATUSES:
            raise ValueError(f"Invalid suggestion status: {self.status}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestion_id": self.suggestion_id,
            "pattern_type": self.pattern_type,
            "suggested_regex": self.suggested_regex,
            "sample_text": self.sample_text,
            "correct_value": self.correct_value,
            "post_id": self.post_id,
            "occurrence_count": self.occurrence_count,
            "status": self.status,
            "created_pattern_id": self.created_pattern_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


@dataclass(frozen=True)
class TrainingReport:
    """What one training pass changed."""

    post_id: str
    trained: bool = False
    sources: dict[str, str] = field(default_factory=dict)
    conflicts: tuple[FieldConflict, ...] = ()
    successes: tuple[str, ...] = ()
    failures: tuple[str, ...] = ()
    deactivated: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    skipped_reason: str | None = None
