"""
Dependency injection for FastAPI endpoints.
"""

from src.runs.repository import LogRepository, RunRepository
from src.services.ingest_service import IngestService
from src.storage.database import Database
from src.storage.repository import PostRepository

# Global instances (initialized on first request)
_database: Database | None = None
_ingest_service: IngestService | None = None


async def get_database() -> Database:
    """Get a connected database instance."""
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()

    return _database


async def get_post_repository() -> PostRepository:
    """Get the post repository bound to the shared database."""
    return PostRepository(await get_database())


async def get_ingest_service() -> IngestService:
    """
    Get ingest service instance.

    Creates a singleton service bound to the shared database; collaborators
    are built from configuration.
    """
    global _ingest_service

    if _ingest_service is None:
        _ingest_service = IngestService(await get_database())

    return _ingest_service


async def cleanup_dependencies() -> None:
    """Cleanup global instances on shutdown."""
    global _database, _ingest_service

    _ingest_service = None

    if _database is not None:
        await _database.close()
        _database = None


async def get_run_repository() -> RunRepository:
    """Get the scrape run repository bound to the shared database."""
    return RunRepository(await get_database())


async def get_log_repository() -> LogRepository:
    """Get the run log repository bound to the shared database."""
    return LogRepository(await get_database())
