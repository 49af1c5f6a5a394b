"""Tests for the caption pre-filter and classifiers."""

from datetime import date, datetime, timezone

import pytest

from src.extraction.prefilter import (
    detect_availability,
    detect_event_status,
    detect_location_status,
    has_event_keyword,
    has_temporal_event_indicators,
    historical_reject_reason,
    infer_category,
    is_event_in_past,
    is_possibly_vendor_post,
    is_recurring_schedule_post,
    is_vendor_post_strict,
    matches_exclusion,
)
from src.extraction.schemas import REJECT_EVENT_BEFORE_POST, REJECT_OLD_POST


class TestVendorDetection:
    """Tests for merchant post detection."""

    def test_two_strict_signals_is_vendor(self):
        assert is_vendor_post_strict("Restocked! Shop now before it's gone.")

    def test_single_strict_signal_is_not_vendor(self):
        assert not is_vendor_post_strict("Shop now at our booth during the gig")

    def test_market_framing_overrides(self):
        text = "Weekend Flea Market! Free shipping on online orders, shop now at booth 4"
        assert not is_vendor_post_strict(text)

    def test_soft_signal(self):
        assert is_possibly_vendor_post("Album launch party with 20% off merch")
        assert not is_possibly_vendor_post("Album launch party at The Victor")


class TestRecurringSchedule:
    """Tests for operating-hours and weekly schedule detection."""

    @pytest.mark.parametrize(
        "text",
        [
            "We're open daily from 10AM!",
            "Store hours: 11AM - 9PM",
            "Live acoustic every Friday night",
            "Open Tues to Sat, 6PM onwards",
        ],
    )
    def test_schedule_posts(self, text):
        assert is_recurring_schedule_post(text)

    def test_explicit_date_keeps_post(self):
        assert not is_recurring_schedule_post("Every Friday we jam, but this March 14 is special")

    def test_plain_event(self):
        assert not is_recurring_schedule_post("Jazz night on March 14, 8PM")


class TestSignals:
    """Tests for exclusion, keyword and temporal signals."""

    def test_exclusion_phrases(self):
        assert matches_exclusion("Happy birthday to our barista!")
        assert matches_exclusion("#tbt to last year's show")
        assert not matches_exclusion("Happy birthday party this Saturday")

    def test_event_keywords(self):
        assert has_event_keyword("JOIN US for a night of music")
        assert not has_event_keyword("New latte flavor just dropped")

    def test_temporal_indicators_need_range_and_event_word(self):
        assert has_temporal_event_indicators("Holiday Bazaar Dec 5-7 at the park")
        assert has_temporal_event_indicators("Art fair on 12 & 13 April")
        assert not has_temporal_event_indicators("Bazaar this weekend")
        assert not has_temporal_event_indicators("Closed Dec 24-25")


class TestClassifiers:
    """Tests for category and lifecycle classification."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Techno party till late", "nightlife"),
            ("Live jazz this Friday", "music"),
            ("Gallery opening and art talk", "art_culture"),
            ("Night market by the bay", "markets"),
            ("Pottery workshop for beginners", "workshops"),
            ("Sunrise yoga by the beach", "fitness"),
            ("Coastal cleanup volunteers needed", "community"),
            ("Something nice is happening", "other"),
        ],
    )
    def test_infer_category(self, text, expected):
        assert infer_category(text) == expected

    def test_event_status(self):
        assert detect_event_status("Tonight's show is CANCELLED") == "cancelled"
        assert detect_event_status("Postponed due to weather") == "postponed"
        assert detect_event_status("Moved to next Friday") == "rescheduled"
        assert detect_event_status("See you there") == "confirmed"

    def test_availability(self):
        assert detect_availability("SOLD OUT, thank you!") == "sold_out"
        assert detect_availability("Join the waitlist") == "waitlist"
        assert detect_availability("Few slots left") == "few_left"
        assert detect_availability("Limited seats") == "limited"
        assert detect_availability("Tickets at the door") == "available"

    def test_location_status(self):
        assert detect_location_status("Venue: TBA", has_venue=False) == "tba"
        assert detect_location_status("Secret location, DM us", has_venue=False) == "secret"
        assert detect_location_status("DM for the address", has_venue=False) == "dm_for_details"
        assert detect_location_status("At The Victor", has_venue=True) == "confirmed"
        assert detect_location_status("Soon", has_venue=False) == "tba"


class TestHistoricalAndPast:
    """Tests for historical-post and event-in-past checks."""

    def _posted(self, day: date) -> datetime:
        return datetime(day.year, day.month, day.day, 3, 0, tzinfo=timezone.utc)

    def test_event_before_post(self):
        reason = historical_reject_reason("2025-03-01", self._posted(date(2025, 3, 5)), date(2025, 3, 10))
        assert reason == REJECT_EVENT_BEFORE_POST

    def test_old_post_with_past_event(self):
        reason = historical_reject_reason("2025-01-20", self._posted(date(2025, 1, 10)), date(2025, 3, 10))
        assert reason == REJECT_OLD_POST

    def test_old_post_with_future_event_is_kept(self):
        assert historical_reject_reason("2025-04-20", self._posted(date(2025, 1, 10)), date(2025, 3, 10)) is None

    def test_age_threshold_is_configurable(self):
        posted = self._posted(date(2025, 2, 20))
        assert historical_reject_reason("2025-03-01", posted, date(2025, 3, 10)) is None
        assert historical_reject_reason("2025-03-01", posted, date(2025, 3, 10), max_age_days=7) == REJECT_OLD_POST

    def test_unknown_dates(self):
        assert historical_reject_reason(None, self._posted(date(2025, 3, 1)), date(2025, 3, 10)) is None
        assert historical_reject_reason("2025-03-01", None, date(2025, 3, 10)) is None
        assert historical_reject_reason("not-a-date", self._posted(date(2025, 3, 1)), date(2025, 3, 10)) is None

    def test_event_in_past(self):
        now = datetime(2025, 3, 10, 21, 0)

        assert is_event_in_past("2025-03-09", now)
        assert not is_event_in_past("2025-03-11", now)
        assert not is_event_in_past("2025-03-08", now, event_end_date="2025-03-12")
        assert not is_event_in_past(None, now)

    def test_event_today_ends_at_end_time(self):
        now = datetime(2025, 3, 10, 21, 0)

        assert not is_event_in_past("2025-03-10", now)
        assert not is_event_in_past("2025-03-10", now, end_time="23:00")
        assert is_event_in_past("2025-03-10", now, end_time="20:00")
