"""Event grouper.

Links an incoming post to stored posts describing the same event: same
venue, event date within the day window, and similar enough titles.

Primary selection:

- A new group is led by the post with the higher source authority, with
  engagement as the tie-break; full ties keep the stored post.
- A post joining an existing group replaces its primary when it is
  strictly more complete, or when it outranks the primary as above. It
  first joins as a member and is then swapped in atomically.
- A post that already belongs to another group never becomes a member of
  a second one: both groups are folded into one in a single transaction.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from src.dedup.repository import EventGroupRepository
from src.dedup.schemas import DedupOutcome, EventCandidate, EventGroup
from src.dedup.similarity import title_similarity
from src.validation.config import ValidationConfig
from src.validation import validator as _validator

if TYPE_CHECKING:
    from src.validation.validator import DuplicateCheck

logger = logging.getLogger(__name__)


def outranks(incoming: EventCandidate, current: EventCandidate) -> bool:
    """Higher source authority, then higher engagement; ties keep the current post."""
    if incoming.source_authority != current.source_authority:
        return incoming.source_authority > current.source_authority
    return incoming.engagement > current.engagement


def incoming_wins(incoming: EventCandidate, current: EventCandidate, check: DuplicateCheck) -> bool:
    """Whether the incoming post should replace the primary of an existing group."""
    return check.should_replace_existing or outranks(incoming, current)


class EventGrouper:
    """
    Groups near-duplicate postings of the same event.

    Args:
        repository: Event group repository.
        config: Validation configuration (similarity threshold, day window).
    """

    def __init__(
        self,
        repository: EventGroupRepository,
        config: ValidationConfig | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or ValidationConfig()

    async def group(self, incoming: EventCandidate) -> DedupOutcome:
        """
        Find the matching stored event and update its group.

        Returns:
            DedupOutcome describing the incoming post's role. Posts without
            a venue or a parseable date are never grouped.
        """
        if not incoming.venue_name or not incoming.event_date:
            return DedupOutcome()
        try:
            event_date = date.fromisoformat(incoming.event_date)
        except ValueError:
            return DedupOutcome()

        candidates = await self._repo.find_candidates(
            incoming.venue_name,
            event_date,
            self._config.day_window,
            incoming.post_id,
        )
        match, similarity = self._best_match(incoming, candidates)
        if match is None:
            return DedupOutcome(similarity=similarity)

        group = await self._repo.find_group(match.post_id)

        if group is not None and group.contains(incoming.post_id):
            role = "primary" if group.primary_post_id == incoming.post_id else "merged"
            return DedupOutcome(role=role, group=group, matched_post_id=match.post_id, similarity=similarity)

        own = await self._repo.find_group(incoming.post_id)
        if own is not None:
            return await self._fold(incoming, own, match, group, similarity)

        if group is None:
            wins = outranks(incoming, match)
            primary, merged = (incoming, match) if wins else (match, incoming)
            group = await self._repo.create_group(primary.post_id, merged.post_id)
            return DedupOutcome(
                role="primary" if wins else "merged",
                group=group,
                matched_post_id=match.post_id,
                similarity=similarity,
                demoted_post_id=match.post_id if wins else None,
            )

        if group.primary_post_id == match.post_id:
            current = match
        else:
            current = await self._repo.get_candidate(group.primary_post_id)

        joined = await self._repo.add_member(group.group_id, incoming.post_id)
        if joined is None:
            return DedupOutcome(similarity=similarity, matched_post_id=match.post_id)

        if current is not None:
            check = self._check(incoming, current, similarity)
            if incoming_wins(incoming, current, check):
                swapped = await self._repo.swap_primary(
                    joined.group_id, incoming.post_id, current.post_id
                )
                if swapped is not None:
                    return DedupOutcome(
                        role="primary",
                        group=swapped,
                        matched_post_id=match.post_id,
                        similarity=similarity,
                        swapped=True,
                        demoted_post_id=current.post_id,
                    )

        return DedupOutcome(
            role="merged",
            group=joined,
            matched_post_id=match.post_id,
            similarity=similarity,
        )

    async def _fold(
        self,
        incoming: EventCandidate,
        own: EventGroup,
        match: EventCandidate,
        group: EventGroup | None,
        similarity: float,
    ) -> DedupOutcome:
        """
        Fold the incoming post's existing group and the match (with its
        group, if any) into a single group.

        The two leading posts compete as when joining a group: the match
        side keeps the lead unless the incoming side's primary is strictly
        more complete or outranks it.
        """
        own_primary = await self._primary_of(own, incoming)
        other_primary = match if group is None else await self._primary_of(group, match)
        if own_primary is None or other_primary is None:
            logger.warning(
                f"Cannot fold group {own.group_id} of {incoming.post_id} with {match.post_id}: "
                f"primary row missing"
            )
            role = "primary" if own.primary_post_id == incoming.post_id else "merged"
            return DedupOutcome(role=role, group=own, matched_post_id=match.post_id, similarity=similarity)

        check = self._check(own_primary, other_primary, similarity)
        if incoming_wins(own_primary, other_primary, check):
            primary, demoted = own_primary, other_primary
        else:
            primary, demoted = other_primary, own_primary

        group_ids = [own.group_id] + ([group.group_id] if group is not None else [])
        folded = await self._repo.merge_groups(primary.post_id, [match.post_id], group_ids)
        logger.info(
            f"Folded groups {group_ids} of {incoming.post_id} and {match.post_id} under {primary.post_id}"
        )
        is_primary = folded.primary_post_id == incoming.post_id
        return DedupOutcome(
            role="primary" if is_primary else "merged",
            group=folded,
            matched_post_id=match.post_id,
            similarity=similarity,
            demoted_post_id=demoted.post_id if is_primary else None,
        )

    async def _primary_of(self, group: EventGroup, member: EventCandidate) -> EventCandidate | None:
        if group.primary_post_id == member.post_id:
            return member
        return await self._repo.get_candidate(group.primary_post_id)

    def _best_match(
        self,
        incoming: EventCandidate,
        candidates: list[EventCandidate],
    ) -> tuple[EventCandidate | None, float]:
        """Most similar candidate at or above the threshold; earlier candidates win ties."""
        best: EventCandidate | None = None
        best_score = 0.0
        top_seen = 0.0
        for candidate in candidates:
            score = title_similarity(incoming.title, candidate.title)
            top_seen = max(top_seen, score)
            if score < self._config.similarity_threshold:
                logger.debug(
                    f"Not merging {incoming.post_id} with {candidate.post_id}: "
                    f"titles too different ({score:.2f})"
                )
                continue
            if best is None or score > best_score:
                best, best_score = candidate, score
        return best, (best_score if best is not None else top_seen)

    def _check(self, incoming: EventCandidate, current: EventCandidate, similarity: float) -> DuplicateCheck:
        return _validator.check_for_duplicate(
            incoming.completeness,
            current.completeness,
            similarity,
            self._config.similarity_threshold,
        )
