"""Tests for title similarity and source authority."""

import pytest

from src.dedup.authority import normalize_handle, source_authority
from src.dedup.similarity import title_similarity, title_words


class TestTitleSimilarity:
    """Tests for title_words and title_similarity."""

    def test_title_words_drop_short_words_and_stopwords(self):
        assert title_words("The Jazz & Blues Night at 8!") == {"jazz", "blues", "night"}

    def test_shared_words(self):
        assert title_similarity("Friday Night Jazz Jam", "Friday Night Jazz Session") == pytest.approx(0.6)

    def test_unrelated_titles(self):
        assert title_similarity("Friday Night Jazz Jam", "Saturday Morning Yoga") == 0.0

    def test_case_and_punctuation_ignored(self):
        assert title_similarity("SUNSET SESSIONS!!", "sunset sessions") == 1.0

    @pytest.mark.parametrize("first,second", [(None, "Jazz Night"), ("", "Jazz Night"), ("at the", "Jazz")])
    def test_missing_words_score_zero(self, first, second):
        assert title_similarity(first, second) == 0.0


class TestSourceAuthority:
    """Tests for source_authority."""

    def test_venue_account(self):
        assert source_authority("@TheVictorArtProjects", {"thevictorartprojects"}) == 100

    @pytest.mark.parametrize(
        "handle,expected",
        [
            ("manilaevents", 80),
            ("nightowlproductions", 80),
            ("djsnake", 60),
            ("theweekendband", 60),
            ("nightlifeph", 40),
            ("gigsblog", 40),
            ("juan.delacruz", 50),
            (None, 50),
            ("", 50),
        ],
    )
    def test_handle_heuristics(self, handle, expected):
        assert source_authority(handle) == expected

    def test_normalize_handle(self):
        assert normalize_handle("  @Route196 ") == "route196"
        assert normalize_handle(None) == ""
