"""Venue resolver chain.

Resolves a venue reference to coordinates through an ordered chain,
stopping at the first stage that produces coordinates:

1-4. Known venues: exact, alias, word overlap / partial, fuzzy
5-6. Regional cache: exact, fuzzy
7.   External geocoder (only for an address that passes the validity
     heuristic)

Every stage is recorded as a StageAttempt so the run log can show where
a match came from or why none was found. Geocoder failure never raises.
"""

import dataclasses
import logging

from src.venues.geocoder import GeocodingClient, is_valid_address
from src.venues.matching import KnownVenueMatcher, clean_venue_name
from src.venues.regional_cache import RegionalVenueCache
from src.venues.schemas import (
    STAGE_GEOCODER,
    STAGE_KNOWN_ALIAS,
    STAGE_KNOWN_EXACT,
    STAGE_KNOWN_FUZZY,
    STAGE_KNOWN_WORD,
    STAGE_REGIONAL_EXACT,
    STAGE_REGIONAL_FUZZY,
    StageAttempt,
    VenueMatch,
    VenueResolution,
)

logger = logging.getLogger(__name__)

# Used when the geocoder says valid but reports no confidence
DEFAULT_GEOCODE_CONFIDENCE = 0.7


class VenueResolver:
    """
    Ordered fallback chain from curated venues to the external geocoder.

    All lookups are injected; pass None for a stage to skip it.

    Args:
        known: Known venue matcher.
        regional: Regional venue cache.
        geocoder: Geocoding client.
    """

    def __init__(
        self,
        known: KnownVenueMatcher,
        regional: RegionalVenueCache | None = None,
        geocoder: GeocodingClient | None = None,
    ) -> None:
        self.known = known
        self.regional = regional
        self.geocoder = geocoder

    async def resolve(self, venue_name: str | None, address: str | None = None) -> VenueResolution:
        """
        Resolve a venue reference.

        A known venue without stored coordinates still fixes the canonical
        name; the chain then continues to find coordinates for it.

        Args:
            venue_name: Venue reference from extraction.
            address: Structured address, if extraction found one.

        Returns:
            VenueResolution with the winning match (or None) and the
            attempted stages in order.
        """
        if not venue_name or not venue_name.strip():
            return VenueResolution(query="", match=None)

        query = clean_venue_name(venue_name) or venue_name.strip()
        attempts: list[StageAttempt] = []
        canonical: VenueMatch | None = None

        known_stages = (
            (STAGE_KNOWN_EXACT, self.known.match_exact),
            (STAGE_KNOWN_ALIAS, self.known.match_alias),
            (STAGE_KNOWN_WORD, self.known.match_partial),
            (STAGE_KNOWN_FUZZY, self.known.match_fuzzy),
        )
        for stage, matcher in known_stages:
            match = matcher(query)
            attempts.append(StageAttempt(stage, match is not None, match.match_type if match else None))
            if match is None:
                continue
            if match.has_coordinates:
                return self._done(query, match, attempts)
            canonical = match
            attempts[-1] = dataclasses.replace(attempts[-1], detail="no_coordinates")
            break

        lookup_name = canonical.venue_name if canonical else query

        if self.regional is not None:
            for stage, lookup in (
                (STAGE_REGIONAL_EXACT, self.regional.lookup_exact),
                (STAGE_REGIONAL_FUZZY, self.regional.lookup_fuzzy),
            ):
                match = lookup(lookup_name)
                attempts.append(StageAttempt(stage, match is not None, match.match_type if match else None))
                if match is not None:
                    return self._done(query, self._attach_canonical(match, canonical), attempts)

        match = await self._geocode(lookup_name, address, attempts)
        if match is not None:
            return self._done(query, self._attach_canonical(match, canonical), attempts)

        if canonical is not None:
            return self._done(query, canonical, attempts)

        logger.info(f"No venue match for {query!r} after {len(attempts)} stages")
        return VenueResolution(query=query, match=None, attempts=tuple(attempts))

    async def _geocode(
        self,
        venue_name: str,
        address: str | None,
        attempts: list[StageAttempt],
    ) -> VenueMatch | None:
        if self.geocoder is None or not self.geocoder.enabled:
            attempts.append(StageAttempt(STAGE_GEOCODER, False, detail="disabled"))
            return None
        if not is_valid_address(address):
            attempts.append(StageAttempt(STAGE_GEOCODER, False, detail="invalid_address"))
            return None

        result = await self.geocoder.geocode(venue_name, address or "")
        if result is None or not result.usable:
            detail = "failed" if result is None else "not_valid"
            attempts.append(StageAttempt(STAGE_GEOCODER, False, detail=detail))
            logger.warning(f"Geocoder could not validate venue {venue_name!r} ({detail})")
            return None

        attempts.append(StageAttempt(STAGE_GEOCODER, True, "geocoded"))
        return VenueMatch(
            query=venue_name,
            venue_name=venue_name,
            match_type="geocoded",
            source="geocoder",
            stage=STAGE_GEOCODER,
            confidence=result.confidence or DEFAULT_GEOCODE_CONFIDENCE,
            lat=result.lat,
            lng=result.lng,
            formatted_address=result.formatted_address,
        )

    @staticmethod
    def _attach_canonical(match: VenueMatch, canonical: VenueMatch | None) -> VenueMatch:
        if canonical is None:
            return match
        return dataclasses.replace(
            match,
            venue_name=canonical.venue_name,
            known_venue_id=canonical.known_venue_id,
            city=match.city or canonical.city,
        )

    @staticmethod
    def _done(query: str, match: VenueMatch, attempts: list[StageAttempt]) -> VenueResolution:
        match = dataclasses.replace(match, query=query)
        logger.debug(
            f"Venue {query!r} resolved to {match.venue_name!r} "
            f"via {match.stage_name} ({match.match_type}, {match.confidence:.2f})"
        )
        return VenueResolution(query=query, match=match, attempts=tuple(attempts))
