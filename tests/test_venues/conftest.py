"""Shared fixtures for venue tests."""

import pytest

from src.venues.matching import KnownVenueMatcher
from src.venues.regional_cache import RegionalVenue, RegionalVenueCache
from src.venues.schemas import KnownVenue


@pytest.fixture
def known_venues() -> list[KnownVenue]:
    return [
        KnownVenue(
            name="Circuit Makati",
            venue_id="v1",
            aliases=["Circuit Lane"],
            city="Makati",
            lat=14.5739,
            lng=121.0178,
        ),
        KnownVenue(
            name="The Victor",
            venue_id="v2",
            aliases=["The Victor Art Installation"],
            city="Pasig",
            lat=14.5629,
            lng=121.0819,
            instagram_handle="thevictorartprojects",
        ),
        KnownVenue(name="Route 196", venue_id="v3", city="Quezon City"),
    ]


@pytest.fixture
def matcher(known_venues) -> KnownVenueMatcher:
    return KnownVenueMatcher(known_venues)


@pytest.fixture
def regional_cache() -> RegionalVenueCache:
    return RegionalVenueCache(
        [
            RegionalVenue(
                name="Salcedo Saturday Market",
                lat=14.5605,
                lng=121.0232,
                city="Makati",
                aliases=("salcedo market",),
            ),
            RegionalVenue(name="Cubao Expo", lat=14.6163, lng=121.0557, city="Quezon City"),
        ]
    )
