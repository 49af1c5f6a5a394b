"""Review tier assignment and queue urgency."""

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from src.validation.config import ValidationConfig

ReviewTier = Literal["ready", "quick", "full", "rejected"]

REVIEW_TIERS: tuple[str, ...] = ("ready", "quick", "full", "rejected")


@dataclass(frozen=True)
class TierAssignment:
    """Tier plus the reasons that kept it from a better one."""

    tier: str
    reasons: list[str] = field(default_factory=list)


def assign_review_tier(
    confidence: float | None,
    warnings: list[str],
    has_date: bool,
    has_time: bool,
    has_venue: bool,
    has_coordinates: bool,
    is_known_venue: bool,
    is_unresolved_duplicate: bool = False,
    config: ValidationConfig | None = None,
) -> TierAssignment:
    """
    Assign a review tier.

    - rejected: unresolved duplicate, confidence below the reject
      threshold, or too many warnings
    - ready: high confidence (lower bar for known venues), no warnings,
      date, time and venue present, and coordinates when configured
    - quick: medium confidence with date and venue and few warnings
    - full: everything else

    An unknown confidence never reaches ready and is never rejected for
    being low.
    """
    config = config or ValidationConfig()
    reasons: list[str] = []

    if is_unresolved_duplicate:
        return TierAssignment("rejected", ["duplicate"])
    if confidence is not None and confidence < config.reject_confidence:
        return TierAssignment("rejected", ["low_confidence"])
    if len(warnings) >= config.max_warnings:
        return TierAssignment("rejected", ["too_many_warnings"])

    ready_bar = config.known_venue_ready_confidence if is_known_venue else config.ready_confidence
    if confidence is None or confidence < ready_bar:
        reasons.append("confidence_below_ready")
    if not has_date:
        reasons.append("missing_date")
    if not has_time:
        reasons.append("missing_time")
    if not has_venue:
        reasons.append("missing_venue")
    if config.ready_requires_coordinates and not has_coordinates:
        reasons.append("missing_coordinates")
    if warnings:
        reasons.append("has_warnings")

    if not reasons:
        return TierAssignment("ready", [])

    if (
        confidence is not None
        and confidence >= config.quick_confidence
        and has_date
        and has_venue
        and len(warnings) <= config.quick_max_warnings
    ):
        return TierAssignment("quick", reasons)
    return TierAssignment("full", reasons)


def urgency_score(event_date: date | None, today: date) -> int:
    """
    Queue urgency banded by days until the event.

    Today or past 100, tomorrow 80, within 3 days 60, within a week 50,
    within two weeks 30, later 10. No date scores 0.
    """
    if event_date is None:
        return 0
    days_until = (event_date - today).days
    if days_until <= 0:
        return 100
    if days_until == 1:
        return 80
    if days_until <= 3:
        return 60
    if days_until <= 7:
        return 50
    if days_until <= 14:
        return 30
    return 10
