"""
Venue resolution for extracted events.

Resolves a venue reference to coordinates through an ordered chain:
curated known venues, a static regional cache, then the external
geocoding service.

Components:
- KnownVenueMatcher: exact, alias, word-overlap and fuzzy matching
- RegionalVenueCache: injectable regional name -> coordinates lookup
- GeocodingClient: geocoding collaborator with bounded retries
- VenueResolver: the ordered chain with per-stage attempt records
- KnownVenueRepository: curated venues and correction learning
"""

from src.venues.config import VenueConfig
from src.venues.geocoder import GeocodingClient, is_valid_address
from src.venues.matching import KnownVenueMatcher, clean_venue_name, normalize_venue_name
from src.venues.regional_cache import RegionalVenue, RegionalVenueCache
from src.venues.repository import KnownVenueRepository
from src.venues.resolver import VenueResolver
from src.venues.schemas import GeocodeResult, KnownVenue, StageAttempt, VenueMatch, VenueResolution

__all__ = [
    "GeocodeResult",
    "GeocodingClient",
    "KnownVenue",
    "KnownVenueMatcher",
    "KnownVenueRepository",
    "RegionalVenue",
    "RegionalVenueCache",
    "StageAttempt",
    "VenueConfig",
    "VenueMatch",
    "VenueResolution",
    "VenueResolver",
    "clean_venue_name",
    "is_valid_address",
    "normalize_venue_name",
]
