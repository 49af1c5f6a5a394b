"""Known-venue matching.

Matches a free-text venue reference against curated venues in four
stages, strongest first: exact name, alias, word overlap / substring,
and fuzzy similarity. Fuzzy scores are scaled so a fuzzy hit always
carries less confidence than an exact one.
"""

import logging
import re
import unicodedata
from collections.abc import Iterable

from rapidfuzz import fuzz, process

from src.extraction.normalizer import MONTH_ALTERNATION
from src.venues.config import VenueConfig
from src.venues.schemas import (
    STAGE_KNOWN_ALIAS,
    STAGE_KNOWN_EXACT,
    STAGE_KNOWN_FUZZY,
    STAGE_KNOWN_WORD,
    KnownVenue,
    VenueMatch,
)

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
ALIAS_CONFIDENCE = 0.95
WORD_CONFIDENCE = 0.85
PARTIAL_CONFIDENCE = 0.8

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_LEADING_ARTICLE = re.compile(r"^the\s+")

# Words that say nothing about which venue is meant
_STOPWORDS = frozenset({"and", "the", "for", "with", "from", "inc", "corp"})

# Cut points for geocoding cleanup: separators, dates, calls to action
_CUT_AT = [
    re.compile(r"\s+[-|–—]\s+"),
    re.compile(r"\s*\("),
    re.compile(rf"\s+(?:on\s+)?(?:{MONTH_ALTERNATION})\.?\s+\d", re.IGNORECASE),
    re.compile(r"\s+(?:this|next)\s+(?:mon|tues|wednes|thurs|fri|satur|sun)day", re.IGNORECASE),
    re.compile(r"\s+(?:dm|link in bio|register|tickets?|rsvp|book now)\b", re.IGNORECASE),
]
_TIME_FRAGMENT = re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[\s,.;:!/-]+$")


def normalize_venue_name(name: str) -> str:
    """
    Normalize a venue name for comparison.

    Strips accents, lowercases, maps '&' to 'and', replaces punctuation
    with spaces and drops a leading 'the'.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    lowered = ascii_only.lower().replace("&", " and ")
    collapsed = _NON_ALNUM.sub(" ", lowered).strip()
    return _LEADING_ARTICLE.sub("", collapsed)


def clean_venue_name(name: str) -> str:
    """
    Trim a raw venue reference down to the venue itself.

    Captions often run the venue into other details ("Black Market - Dec 5
    8PM"); this cuts at separators, dates and calls to action and removes
    stray times.
    """
    cleaned = name.strip()
    for pattern in _CUT_AT:
        match = pattern.search(cleaned)
        if match and match.start() > 0:
            cleaned = cleaned[: match.start()]
    cleaned = _TIME_FRAGMENT.sub("", cleaned)
    cleaned = re.sub(r"\s{2,}", " ", cleaned)
    return _TRAILING_PUNCT.sub("", cleaned).strip()


def significant_words(normalized: str) -> set[str]:
    return {w for w in normalized.split() if len(w) > 2 and w not in _STOPWORDS}


class KnownVenueMatcher:
    """
    Matches venue references against the curated known-venue list.

    Venues are examined in name order so the same input always picks the
    same venue.

    Args:
        venues: Curated venues.
        config: Venue configuration (fuzzy threshold, scaling).
    """

    def __init__(
        self,
        venues: Iterable[KnownVenue] = (),
        config: VenueConfig | None = None,
    ) -> None:
        self._config = config or VenueConfig()
        self._venues: list[KnownVenue] = []
        self._by_name: dict[str, KnownVenue] = {}
        self._by_alias: dict[str, KnownVenue] = {}
        self.replace(venues)

    def replace(self, venues: Iterable[KnownVenue]) -> None:
        """Swap in a fresh venue list (after corrections or a reload)."""
        self._venues = sorted(venues, key=lambda v: v.name.lower())
        self._by_name = {}
        self._by_alias = {}
        for venue in self._venues:
            self._by_name.setdefault(normalize_venue_name(venue.name), venue)
            for alias in venue.aliases:
                self._by_alias.setdefault(normalize_venue_name(alias), venue)

    def __len__(self) -> int:
        return len(self._venues)

    @property
    def venues(self) -> list[KnownVenue]:
        return list(self._venues)

    def match_exact(self, query: str) -> VenueMatch | None:
        venue = self._by_name.get(normalize_venue_name(query))
        if venue is None:
            return None
        return self._to_match(query, venue, "exact", STAGE_KNOWN_EXACT, EXACT_CONFIDENCE, venue.name)

    def match_alias(self, query: str) -> VenueMatch | None:
        normalized = normalize_venue_name(query)
        venue = self._by_alias.get(normalized)
        if venue is None:
            return None
        alias = next(a for a in venue.aliases if normalize_venue_name(a) == normalized)
        return self._to_match(query, venue, "alias", STAGE_KNOWN_ALIAS, ALIAS_CONFIDENCE, alias)

    def match_partial(self, query: str) -> VenueMatch | None:
        """
        Word-overlap or substring match.

        Word overlap needs two shared significant words, or one when the
        venue name is a single significant word. Substring containment in
        either direction is tried when no venue overlaps enough.
        """
        normalized = normalize_venue_name(query)
        if not normalized:
            return None
        query_words = significant_words(normalized)

        best: KnownVenue | None = None
        best_overlap = 0
        for venue in self._venues:
            venue_words = significant_words(normalize_venue_name(venue.name))
            if not venue_words:
                continue
            overlap = len(query_words & venue_words)
            required = 1 if len(venue_words) == 1 else 2
            if overlap >= required and overlap > best_overlap:
                best, best_overlap = venue, overlap
        if best is not None:
            return self._to_match(query, best, "word", STAGE_KNOWN_WORD, WORD_CONFIDENCE, best.name)

        min_len = self._config.min_partial_length
        if len(normalized) < min_len:
            return None
        for venue in self._venues:
            for candidate in [venue.name, *venue.aliases]:
                name = normalize_venue_name(candidate)
                if len(name) < min_len:
                    continue
                if name in normalized or normalized in name:
                    return self._to_match(
                        query, venue, "partial", STAGE_KNOWN_WORD, PARTIAL_CONFIDENCE, candidate
                    )
        return None

    def match_fuzzy(self, query: str) -> VenueMatch | None:
        normalized = normalize_venue_name(query)
        if not normalized or not self._venues:
            return None

        choices: list[str] = []
        owners: list[tuple[KnownVenue, str]] = []
        for venue in self._venues:
            for candidate in [venue.name, *venue.aliases]:
                choices.append(normalize_venue_name(candidate))
                owners.append((venue, candidate))

        best = process.extractOne(
            normalized,
            choices,
            scorer=fuzz.ratio,
            score_cutoff=self._config.known_fuzzy_threshold * 100,
        )
        if best is None:
            return None
        _, score, index = best
        venue, candidate = owners[index]
        confidence = round(score / 100 * self._config.fuzzy_confidence_factor, 4)
        return self._to_match(query, venue, "fuzzy", STAGE_KNOWN_FUZZY, confidence, candidate)

    @staticmethod
    def _to_match(
        query: str,
        venue: KnownVenue,
        match_type: str,
        stage: int,
        confidence: float,
        matched_on: str,
    ) -> VenueMatch:
        return VenueMatch(
            query=query,
            venue_name=venue.name,
            match_type=match_type,
            source="known_venues",
            stage=stage,
            confidence=confidence,
            lat=venue.lat,
            lng=venue.lng,
            formatted_address=venue.address,
            city=venue.city,
            known_venue_id=venue.venue_id,
            matched_on=matched_on,
        )
