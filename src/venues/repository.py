"""Known venue repository for the known_venues table.

Manual corrections feed this table: a corrected venue gets its raw
spelling appended as an alias and its correction counter bumped in one
upsert, so repeated corrections across batches never race.
"""

import logging
from typing import Any

from src.storage.database import Database
from src.venues.schemas import KnownVenue

logger = logging.getLogger(__name__)


class KnownVenueRepository:
    """Repository for curated venues."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_all(self) -> list[KnownVenue]:
        rows = await self._db.fetch("SELECT * FROM known_venues ORDER BY name")
        return [_row_to_venue(row) for row in rows]

    async def get_by_name(self, name: str) -> KnownVenue | None:
        row = await self._db.fetchrow(
            "SELECT * FROM known_venues WHERE lower(name) = lower($1)",
            name,
        )
        return _row_to_venue(row) if row else None

    async def venue_handles(self) -> set[str]:
        """Lowercased account handles that belong to venues."""
        rows = await self._db.fetch(
            "SELECT instagram_handle FROM known_venues WHERE instagram_handle IS NOT NULL"
        )
        return {row["instagram_handle"].lower().lstrip("@") for row in rows}

    async def upsert(self, venue: KnownVenue) -> KnownVenue:
        """Insert a venue or update the curated fields of the same-named one."""
        sql = """
            INSERT INTO known_venues (
                name, aliases, address, city, lat, lng, instagram_handle
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (name) DO UPDATE SET
                aliases = EXCLUDED.aliases,
                address = COALESCE(EXCLUDED.address, known_venues.address),
                city = COALESCE(EXCLUDED.city, known_venues.city),
                lat = COALESCE(EXCLUDED.lat, known_venues.lat),
                lng = COALESCE(EXCLUDED.lng, known_venues.lng),
                instagram_handle = COALESCE(EXCLUDED.instagram_handle, known_venues.instagram_handle),
                updated_at = NOW()
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            venue.name,
            list(venue.aliases),
            venue.address,
            venue.city,
            venue.lat,
            venue.lng,
            venue.instagram_handle,
        )
        return _row_to_venue(row)

    async def record_correction(
        self,
        raw_name: str,
        canonical_name: str,
        lat: float | None = None,
        lng: float | None = None,
        address: str | None = None,
    ) -> KnownVenue:
        """
        Learn from a manual venue correction.

        Creates the canonical venue when missing, appends the raw spelling
        as an alias unless already present (case-insensitive), and bumps
        the correction counter.
        """
        sql = """
            INSERT INTO known_venues (
                name, aliases, address, lat, lng,
                learned_from_corrections, correction_count
            ) VALUES (
                $1,
                CASE WHEN lower($2) = lower($1) THEN ARRAY[]::text[] ELSE ARRAY[$2]::text[] END,
                $3, $4, $5, TRUE, 1
            )
            ON CONFLICT (name) DO UPDATE SET
                aliases = CASE
                    WHEN lower($2) = lower(known_venues.name)
                        OR lower($2) = ANY(SELECT lower(a) FROM unnest(known_venues.aliases) AS a)
                    THEN known_venues.aliases
                    ELSE array_append(known_venues.aliases, $2)
                END,
                address = COALESCE(known_venues.address, EXCLUDED.address),
                lat = COALESCE(EXCLUDED.lat, known_venues.lat),
                lng = COALESCE(EXCLUDED.lng, known_venues.lng),
                learned_from_corrections = TRUE,
                correction_count = known_venues.correction_count + 1,
                updated_at = NOW()
            RETURNING *
        """
        row = await self._db.fetchrow(sql, canonical_name, raw_name, address, lat, lng)
        venue = _row_to_venue(row)
        logger.info(
            f"Recorded venue correction {raw_name!r} -> {canonical_name!r} "
            f"(corrections={venue.correction_count})"
        )
        return venue


def _row_to_venue(row: Any) -> KnownVenue:
    venue_id = row.get("id")
    return KnownVenue(
        venue_id=str(venue_id) if venue_id is not None else None,
        name=row["name"],
        aliases=list(row.get("aliases") or []),
        address=row.get("address"),
        city=row.get("city"),
        lat=row.get("lat"),
        lng=row.get("lng"),
        instagram_handle=row.get("instagram_handle"),
        correction_count=row.get("correction_count") or 0,
        learned_from_corrections=bool(row.get("learned_from_corrections")),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )
