"""External geocoding collaborator client.

Sends ``{venueName, address}`` to the geocoding service and validates the
``{isValid, lat, lng, formattedAddress, confidence}`` answer. Transient
failures are retried with bounded backoff by the HTTP layer; after that
the client returns None and the post continues without coordinates.
"""

import logging
import re

from pydantic import ValidationError

from src.ingestion.circuit_breaker import CircuitOpenError, GenericCircuitBreaker
from src.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from src.venues.config import VenueConfig
from src.venues.schemas import GeocodeResult

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(
    r"\b(?:tba|tbd|tbc|to be announced|dm for|dm us|secret location|link in bio)\b",
    re.IGNORECASE,
)
_ADDRESS_TOKEN = re.compile(
    r"\b(?:st|street|ave|avenue|rd|road|blvd|boulevard|drive|dr|highway|hwy|brgy|barangay|"
    r"bldg|building|tower|floor|flr|city|village|mall|corner|cor|ext|extension)\b\.?",
    re.IGNORECASE,
)


def is_valid_address(address: str | None) -> bool:
    """
    Heuristic check that an address is worth sending to the geocoder.

    Needs at least two words and ten characters, a street number or a
    street-type word, and no placeholder like "TBA" or "DM for address".
    """
    if not address:
        return False
    text = address.strip()
    if len(text) < 10 or len(text.split()) < 2:
        return False
    if _PLACEHOLDER.search(text):
        return False
    return bool(re.search(r"\d", text) or _ADDRESS_TOKEN.search(text))


class GeocodingClient:
    """
    Client for the geocoding service.

    Args:
        config: Venue configuration with URL, key and retry limits.
    """

    def __init__(self, config: VenueConfig) -> None:
        self._config = config
        self._breaker = GenericCircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_timeout,
            name="geocoder",
        )

    @property
    def enabled(self) -> bool:
        return bool(self._config.geocoder_url)

    @property
    def breaker(self) -> GenericCircuitBreaker:
        return self._breaker

    async def geocode(self, venue_name: str, address: str) -> GeocodeResult | None:
        """
        Geocode a venue.

        Returns:
            The validated result, or None when the service is disabled,
            unavailable, or answered with something unusable.
        """
        if not self.enabled:
            return None
        try:
            return await self._breaker.call(self._request, venue_name, address)
        except CircuitOpenError:
            logger.warning(f"Geocoder circuit open, skipping {venue_name!r}")
            return None
        except HTTPClientError as e:
            logger.warning(f"Geocoding failed for {venue_name!r}: {e}")
            return None

    async def _request(self, venue_name: str, address: str) -> GeocodeResult | None:
        key = self._config.geocoder_api_key
        retry = RetryConfig(
            max_retries=self._config.geocoder_max_retries,
            base_delay=self._config.geocoder_base_delay,
            max_backoff_seconds=self._config.geocoder_max_delay,
        )
        async with HTTPClient(
            retry,
            timeout=self._config.geocoder_timeout_seconds,
            bearer_token=key.get_secret_value() if key else None,
        ) as client:
            response = await client.post(
                self._config.geocoder_url or "",
                json_body={"venueName": venue_name, "address": address},
            )

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Geocoder returned non-JSON body for {venue_name!r}")
            return None
        if not isinstance(data, dict):
            return None
        try:
            return GeocodeResult.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Geocoder response for {venue_name!r} failed validation: {e}")
            return None
