"""
Deduplication of event postings.

Several accounts often post the same event. Postings at the same venue
within a day of each other and with similar titles are linked into an
event group with one primary record chosen by source authority and
engagement, which a more complete record may later replace.
"""

from src.dedup.authority import normalize_handle, source_authority
from src.dedup.grouper import EventGrouper, incoming_wins, outranks
from src.dedup.repository import EventGroupRepository
from src.dedup.schemas import DedupOutcome, EventCandidate, EventGroup
from src.dedup.similarity import title_similarity, title_words

__all__ = [
    "DedupOutcome",
    "EventCandidate",
    "EventGroup",
    "EventGroupRepository",
    "EventGrouper",
    "incoming_wins",
    "outranks",
    "normalize_handle",
    "source_authority",
    "title_similarity",
    "title_words",
]
