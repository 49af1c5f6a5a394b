"""Static regional venue cache.

A read-only name -> coordinates table for popular venues in the service
region. Lookups are exact (name or alias, normalized) and then fuzzy.
The table is injected so tests and deployments can supply their own.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from rapidfuzz import fuzz, process

from src.venues.matching import normalize_venue_name
from src.venues.schemas import STAGE_REGIONAL_EXACT, STAGE_REGIONAL_FUZZY, VenueMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionalVenue:
    """One cached venue."""

    name: str
    lat: float
    lng: float
    city: str | None = None
    address: str | None = None
    aliases: tuple[str, ...] = field(default_factory=tuple)


class RegionalVenueCache:
    """
    In-memory regional venue lookup.

    Args:
        entries: Cached venues.
        fuzzy_threshold: Minimum fuzzy similarity (0-1).
    """

    def __init__(self, entries: Iterable[RegionalVenue] = (), fuzzy_threshold: float = 0.7) -> None:
        self._fuzzy_threshold = fuzzy_threshold
        self._entries = sorted(entries, key=lambda e: e.name.lower())
        self._keys: list[str] = []
        self._owners: list[tuple[RegionalVenue, str]] = []
        self._exact: dict[str, tuple[RegionalVenue, str]] = {}
        for entry in self._entries:
            for name in (entry.name, *entry.aliases):
                key = normalize_venue_name(name)
                if not key:
                    continue
                self._keys.append(key)
                self._owners.append((entry, name))
                self._exact.setdefault(key, (entry, name))

    @classmethod
    def from_json(cls, path: str | Path, fuzzy_threshold: float = 0.7) -> "RegionalVenueCache":
        """
        Load a cache file.

        Accepts ``{"venues": [{"name", "lat", "lng", ...}]}`` or a bare list.
        A missing file yields an empty cache.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.warning(f"Regional venue cache not found at {file_path}, using empty cache")
            return cls((), fuzzy_threshold)

        data = json.loads(file_path.read_text(encoding="utf-8"))
        rows = data.get("venues", []) if isinstance(data, dict) else data
        entries = [
            RegionalVenue(
                name=row["name"],
                lat=float(row["lat"]),
                lng=float(row["lng"]),
                city=row.get("city"),
                address=row.get("address"),
                aliases=tuple(row.get("aliases") or ()),
            )
            for row in rows
        ]
        logger.info(f"Loaded {len(entries)} regional venues from {file_path}")
        return cls(entries, fuzzy_threshold)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup_exact(self, query: str) -> VenueMatch | None:
        hit = self._exact.get(normalize_venue_name(query))
        if hit is None:
            return None
        entry, matched_on = hit
        match_type = "exact" if matched_on == entry.name else "alias"
        confidence = 0.9 if match_type == "exact" else 0.85
        return self._to_match(query, entry, match_type, STAGE_REGIONAL_EXACT, confidence, matched_on)

    def lookup_fuzzy(self, query: str) -> VenueMatch | None:
        key = normalize_venue_name(query)
        if not key or not self._keys:
            return None
        best = process.extractOne(
            key,
            self._keys,
            scorer=fuzz.ratio,
            score_cutoff=self._fuzzy_threshold * 100,
        )
        if best is None:
            return None
        _, score, index = best
        entry, matched_on = self._owners[index]
        confidence = round(score / 100 * 0.8, 4)
        return self._to_match(query, entry, "fuzzy", STAGE_REGIONAL_FUZZY, confidence, matched_on)

    @staticmethod
    def _to_match(
        query: str,
        entry: RegionalVenue,
        match_type: str,
        stage: int,
        confidence: float,
        matched_on: str,
    ) -> VenueMatch:
        return VenueMatch(
            query=query,
            venue_name=entry.name,
            match_type=match_type,
            source="regional_cache",
            stage=stage,
            confidence=confidence,
            lat=entry.lat,
            lng=entry.lng,
            formatted_address=entry.address,
            city=entry.city,
            matched_on=matched_on,
        )
