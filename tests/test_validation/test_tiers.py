"""Tests for review tier assignment and urgency."""

from datetime import date

import pytest

from src.validation.config import ValidationConfig
from src.validation.tiers import REVIEW_TIERS, assign_review_tier, urgency_score


def _assign(confidence=0.9, warnings=(), **flags):
    kwargs = {
        "has_date": True,
        "has_time": True,
        "has_venue": True,
        "has_coordinates": True,
        "is_known_venue": False,
    }
    kwargs.update(flags)
    return assign_review_tier(confidence, list(warnings), **kwargs)


class TestAssignReviewTier:
    """Tests for assign_review_tier."""

    def test_complete_confident_is_ready(self):
        assignment = _assign()

        assert assignment.tier == "ready"
        assert assignment.reasons == []

    def test_known_venue_lowers_ready_bar(self):
        assert _assign(0.75, is_known_venue=True).tier == "ready"

        assignment = _assign(0.75)
        assert assignment.tier == "quick"
        assert assignment.reasons == ["confidence_below_ready"]

    def test_missing_coordinates_blocks_ready(self):
        assignment = _assign(has_coordinates=False)

        assert assignment.tier == "quick"
        assert assignment.reasons == ["missing_coordinates"]

    def test_coordinates_requirement_is_configurable(self):
        config = ValidationConfig(ready_requires_coordinates=False)
        assignment = assign_review_tier(
            0.9, [], True, True, True, has_coordinates=False, is_known_venue=False, config=config
        )
        assert assignment.tier == "ready"

    def test_unresolved_duplicate_is_rejected(self):
        assignment = _assign(is_unresolved_duplicate=True)
        assert (assignment.tier, assignment.reasons) == ("rejected", ["duplicate"])

    def test_low_confidence_is_rejected(self):
        assert _assign(0.2).reasons == ["low_confidence"]

    def test_too_many_warnings_is_rejected(self):
        assignment = _assign(warnings=["a", "b", "c", "d"])
        assert (assignment.tier, assignment.reasons) == ("rejected", ["too_many_warnings"])

    def test_unknown_confidence_goes_to_full(self):
        assignment = _assign(None)

        assert assignment.tier == "full"
        assert "confidence_below_ready" in assignment.reasons

    def test_missing_venue_goes_to_full(self):
        assignment = _assign(has_venue=False)

        assert assignment.tier == "full"
        assert "missing_venue" in assignment.reasons

    def test_three_warnings_goes_to_full(self):
        assert _assign(warnings=["a", "b", "c"]).tier == "full"

    @pytest.mark.parametrize("has_time", [True, False])
    @pytest.mark.parametrize("has_coordinates", [True, False])
    def test_higher_confidence_never_worsens_tier(self, has_time, has_coordinates):
        rank = {tier: index for index, tier in enumerate(REVIEW_TIERS)}
        confidences = [0.1, 0.3, 0.5, 0.6, 0.7, 0.8, 0.95]

        ranks = [
            rank[_assign(c, has_time=has_time, has_coordinates=has_coordinates).tier]
            for c in confidences
        ]

        assert ranks == sorted(ranks, reverse=True)


class TestUrgencyScore:
    """Tests for urgency_score."""

    @pytest.mark.parametrize(
        "days,expected",
        [(-2, 100), (0, 100), (1, 80), (3, 60), (5, 50), (7, 50), (10, 30), (14, 30), (30, 10)],
    )
    def test_bands(self, days, expected):
        today = date(2025, 3, 10)
        assert urgency_score(date.fromordinal(today.toordinal() + days), today) == expected

    def test_no_date(self):
        assert urgency_score(None, date(2025, 3, 10)) == 0
