"""Schema definitions for deduplication and event grouping."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

GroupRole = Literal["none", "primary", "merged"]


@dataclass(frozen=True)
class EventCandidate:
    """
    A stored or incoming post as seen by the grouper.

    Attributes:
        post_id: External post id.
        source_authority: Authority of the owning account (40-100).
        engagement: Likes plus comments, the authority tie-break.
        completeness: Weighted field coverage (0-100).
    """

    post_id: str
    title: str | None
    venue_name: str | None
    event_date: str | None
    source_authority: int = 50
    engagement: int = 0
    completeness: int = 0


@dataclass
class EventGroup:
    """
    Posts describing the same real-world event.

    The primary is never also a merged member, and a post belongs to at
    most one group.
    """

    primary_post_id: str
    merged_post_ids: list[str] = field(default_factory=list)
    group_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def member_ids(self) -> list[str]:
        return [self.primary_post_id, *self.merged_post_ids]

    def contains(self, post_id: str) -> bool:
        return post_id == self.primary_post_id or post_id in self.merged_post_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "primary_post_id": self.primary_post_id,
            "merged_post_ids": list(self.merged_post_ids),
        }


@dataclass(frozen=True)
class DedupOutcome:
    """
    Result of grouping one incoming post.

    ``role`` is the incoming post's role after grouping; ``duplicate_of``
    is the group primary when the incoming post is a merged member.
    """

    role: str = "none"
    group: EventGroup | None = None
    matched_post_id: str | None = None
    similarity: float = 0.0
    swapped: bool = False
    demoted_post_id: str | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.role == "merged"

    @property
    def duplicate_of(self) -> str | None:
        if self.role == "merged" and self.group is not None:
            return self.group.primary_post_id
        return None
