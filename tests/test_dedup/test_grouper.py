"""Tests for EventGrouper primary selection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.dedup.grouper import EventGrouper, incoming_wins, outranks
from src.dedup.schemas import EventCandidate, EventGroup
from src.validation.validator import check_for_duplicate


def _candidate(post_id: str, **overrides) -> EventCandidate:
    fields = {
        "title": "Friday Night Jazz Jam",
        "venue_name": "The Victor",
        "event_date": "2025-03-14",
        "source_authority": 50,
        "engagement": 10,
        "completeness": 70,
    }
    fields.update(overrides)
    return EventCandidate(post_id=post_id, **fields)


def _groups(*groups: EventGroup):
    """find_group stand-in that resolves membership from the given groups."""

    def find(post_id):
        return next((group for group in groups if group.contains(post_id)), None)

    return find


@pytest.fixture
def repo():
    repository = MagicMock()
    repository.find_candidates = AsyncMock(return_value=[])
    repository.find_group = AsyncMock(return_value=None)
    repository.get_candidate = AsyncMock(return_value=None)
    repository.create_group = AsyncMock(
        side_effect=lambda primary, merged: EventGroup(primary, [merged], group_id=1)
    )
    repository.add_member = AsyncMock()
    repository.swap_primary = AsyncMock()
    repository.merge_groups = AsyncMock()
    return repository


@pytest.fixture
def grouper(repo):
    return EventGrouper(repo)


class TestIncomingWins:
    """Tests for incoming_wins."""

    def test_authority_decides_first(self):
        incoming = _candidate("new", source_authority=100, completeness=10)
        current = _candidate("old", completeness=90)

        assert incoming_wins(incoming, current, check_for_duplicate(10, 90, 1.0))

    def test_completeness_breaks_authority_tie(self):
        incoming = _candidate("new", completeness=85)
        current = _candidate("old", completeness=70)

        assert incoming_wins(incoming, current, check_for_duplicate(85, 70, 1.0))
        assert not incoming_wins(current, incoming, check_for_duplicate(70, 85, 1.0))

    def test_engagement_breaks_completeness_tie(self):
        incoming = _candidate("new", engagement=50)
        current = _candidate("old", engagement=10)

        assert incoming_wins(incoming, current, check_for_duplicate(70, 70, 1.0))
        assert not incoming_wins(current, incoming, check_for_duplicate(70, 70, 1.0))

    def test_full_tie_keeps_stored_post(self):
        assert not incoming_wins(_candidate("new"), _candidate("old"), check_for_duplicate(70, 70, 1.0))

    def test_more_complete_post_replaces_higher_authority(self):
        incoming = _candidate("new", source_authority=40, completeness=100)
        current = _candidate("old", source_authority=50, completeness=40)

        assert incoming_wins(incoming, current, check_for_duplicate(100, 40, 0.6))


class TestOutranks:
    """Tests for outranks."""

    def test_authority_then_engagement(self):
        assert outranks(_candidate("new", source_authority=80), _candidate("old", engagement=500))
        assert outranks(_candidate("new", engagement=50), _candidate("old"))
        assert not outranks(_candidate("new"), _candidate("old"))

    def test_completeness_is_ignored(self):
        assert not outranks(_candidate("new", completeness=100), _candidate("old", completeness=10))


class TestEventGrouper:
    """Tests for EventGrouper.group."""

    @pytest.mark.asyncio
    async def test_posts_without_venue_are_not_grouped(self, grouper, repo):
        outcome = await grouper.group(_candidate("new", venue_name=None))

        assert outcome.role == "none"
        repo.find_candidates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_date_is_not_grouped(self, grouper, repo):
        outcome = await grouper.group(_candidate("new", event_date="next week"))

        assert outcome.role == "none"
        repo.find_candidates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dissimilar_titles_stay_separate(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old", title="Saturday Morning Yoga")]

        outcome = await grouper.group(_candidate("new"))

        assert outcome.role == "none"
        assert outcome.similarity == 0.0
        repo.create_group.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_candidate_query_uses_day_window(self, grouper, repo):
        await grouper.group(_candidate("new"))

        venue, event_date, window, exclude = repo.find_candidates.call_args[0]
        assert (venue, event_date.isoformat(), window, exclude) == ("The Victor", "2025-03-14", 1, "new")

    @pytest.mark.asyncio
    async def test_new_group_with_incoming_as_merged(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old", title="Friday Night Jazz Session")]

        outcome = await grouper.group(_candidate("new"))

        repo.create_group.assert_awaited_once_with("old", "new")
        assert outcome.role == "merged"
        assert outcome.is_duplicate
        assert outcome.duplicate_of == "old"
        assert outcome.similarity == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_new_group_with_incoming_as_primary(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]

        outcome = await grouper.group(_candidate("new", source_authority=100))

        repo.create_group.assert_awaited_once_with("new", "old")
        assert outcome.role == "primary"
        assert outcome.demoted_post_id == "old"
        assert outcome.duplicate_of is None

    @pytest.mark.asyncio
    async def test_most_similar_candidate_is_chosen(self, grouper, repo):
        repo.find_candidates.return_value = [
            _candidate("partial", title="Friday Night Jazz Session"),
            _candidate("exact"),
        ]

        outcome = await grouper.group(_candidate("new"))

        assert outcome.matched_post_id == "exact"
        assert outcome.similarity == 1.0

    @pytest.mark.asyncio
    async def test_already_grouped_post_is_left_alone(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.return_value = EventGroup("old", ["new"], group_id=4)

        outcome = await grouper.group(_candidate("new"))

        assert outcome.role == "merged"
        repo.add_member.assert_not_awaited()
        repo.create_group.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_joins_existing_group_as_member(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.side_effect = _groups(EventGroup("old", ["other"], group_id=4))
        repo.add_member.return_value = EventGroup("old", ["other", "new"], group_id=4)

        outcome = await grouper.group(_candidate("new"))

        repo.add_member.assert_awaited_once_with(4, "new")
        repo.swap_primary.assert_not_awaited()
        assert outcome.role == "merged"
        assert outcome.duplicate_of == "old"

    @pytest.mark.asyncio
    async def test_better_post_swaps_in_as_primary(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.side_effect = _groups(EventGroup("old", ["other"], group_id=4))
        repo.add_member.return_value = EventGroup("old", ["other", "new"], group_id=4)
        repo.swap_primary.return_value = EventGroup("new", ["other", "old"], group_id=4)

        outcome = await grouper.group(_candidate("new", completeness=95))

        repo.swap_primary.assert_awaited_once_with(4, "new", "old")
        assert outcome.role == "primary"
        assert outcome.swapped
        assert outcome.demoted_post_id == "old"

    @pytest.mark.asyncio
    async def test_lost_swap_race_leaves_incoming_merged(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.side_effect = _groups(EventGroup("old", [], group_id=4))
        repo.add_member.return_value = EventGroup("old", ["new"], group_id=4)
        repo.swap_primary.return_value = None

        outcome = await grouper.group(_candidate("new", completeness=95))

        assert outcome.role == "merged"
        assert not outcome.swapped

    @pytest.mark.asyncio
    async def test_match_on_merged_member_compares_with_primary(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("member")]
        repo.find_group.side_effect = _groups(EventGroup("venue-post", ["member"], group_id=4))
        repo.get_candidate.return_value = _candidate("venue-post", source_authority=100, completeness=100)
        repo.add_member.return_value = EventGroup("venue-post", ["member", "new"], group_id=4)

        outcome = await grouper.group(_candidate("new", completeness=95))

        repo.get_candidate.assert_awaited_once_with("venue-post")
        repo.swap_primary.assert_not_awaited()
        assert outcome.duplicate_of == "venue-post"

    @pytest.mark.asyncio
    async def test_new_group_ignores_completeness(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old", completeness=40)]

        outcome = await grouper.group(_candidate("new", completeness=100))

        repo.create_group.assert_awaited_once_with("old", "new")
        assert outcome.role == "merged"

    @pytest.mark.asyncio
    async def test_more_complete_post_replaces_higher_authority_primary(self, grouper, repo):
        repo.find_candidates.return_value = [
            _candidate("old", title="Friday Night Jazz Session", completeness=40)
        ]
        repo.find_group.side_effect = _groups(EventGroup("old", ["other"], group_id=4))
        repo.add_member.return_value = EventGroup("old", ["other", "new"], group_id=4)
        repo.swap_primary.return_value = EventGroup("new", ["other", "old"], group_id=4)

        outcome = await grouper.group(_candidate("new", source_authority=40, completeness=100))

        assert outcome.similarity == pytest.approx(0.6)
        repo.swap_primary.assert_awaited_once_with(4, "new", "old")
        assert outcome.role == "primary"

    @pytest.mark.asyncio
    async def test_primary_of_another_group_is_folded_not_added(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old", source_authority=100)]
        repo.find_group.side_effect = _groups(EventGroup("new", ["echo"], group_id=1))
        repo.merge_groups.return_value = EventGroup("old", ["new", "echo"], group_id=1)

        outcome = await grouper.group(_candidate("new"))

        repo.merge_groups.assert_awaited_once_with("old", ["old"], [1])
        repo.create_group.assert_not_awaited()
        repo.add_member.assert_not_awaited()
        assert outcome.role == "merged"
        assert outcome.duplicate_of == "old"

    @pytest.mark.asyncio
    async def test_two_groups_fold_under_stronger_primary(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.side_effect = _groups(
            EventGroup("new", ["echo"], group_id=1),
            EventGroup("old", ["copy"], group_id=2),
        )
        repo.merge_groups.return_value = EventGroup("new", ["echo", "old", "copy"], group_id=1)

        outcome = await grouper.group(_candidate("new", source_authority=100))

        repo.merge_groups.assert_awaited_once_with("new", ["old"], [1, 2])
        repo.swap_primary.assert_not_awaited()
        assert outcome.role == "primary"
        assert outcome.demoted_post_id == "old"

    @pytest.mark.asyncio
    async def test_merged_member_elsewhere_compares_its_primary(self, grouper, repo):
        repo.find_candidates.return_value = [_candidate("old")]
        repo.find_group.side_effect = _groups(EventGroup("lead", ["new"], group_id=1))
        repo.get_candidate.return_value = _candidate("lead", source_authority=100)
        repo.merge_groups.return_value = EventGroup("lead", ["new", "old"], group_id=1)

        outcome = await grouper.group(_candidate("new"))

        repo.get_candidate.assert_awaited_once_with("lead")
        repo.merge_groups.assert_awaited_once_with("lead", ["old"], [1])
        assert outcome.role == "merged"
        assert outcome.duplicate_of == "lead"
