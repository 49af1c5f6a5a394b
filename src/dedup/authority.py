"""Source authority scoring from the owning account handle.

When several accounts post the same event, the most authoritative one
becomes the primary record of the event group.
"""

import re
from collections.abc import Collection

VENUE_AUTHORITY = 100
ORGANIZER_AUTHORITY = 80
ARTIST_AUTHORITY = 60
DEFAULT_AUTHORITY = 50
MEDIA_AUTHORITY = 40

_ORGANIZER = re.compile(r"events?|productions?|presents?|collective", re.IGNORECASE)
_ARTIST = re.compile(r"band|music|dj|artist", re.IGNORECASE)
_MEDIA = re.compile(r"blog|media|promo|ph$", re.IGNORECASE)


def normalize_handle(handle: str | None) -> str:
    return (handle or "").strip().lstrip("@").lower()


def source_authority(owner_handle: str | None, venue_handles: Collection[str] = ()) -> int:
    """
    Authority score for an account.

    Venue's own account 100, organizer-style handle 80, artist/performer
    handle 60, media/promo handle 40, anything else 50.

    Args:
        owner_handle: Account handle of the post owner.
        venue_handles: Lowercased handles of known venues.
    """
    handle = normalize_handle(owner_handle)
    if not handle:
        return DEFAULT_AUTHORITY
    if handle in venue_handles:
        return VENUE_AUTHORITY
    if _ORGANIZER.search(handle):
        return ORGANIZER_AUTHORITY
    if _ARTIST.search(handle):
        return ARTIST_AUTHORITY
    if _MEDIA.search(handle):
        return MEDIA_AUTHORITY
    return DEFAULT_AUTHORITY
