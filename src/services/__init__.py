"""Services that orchestrate the event pipeline."""

from src.services.ingest_service import BatchResult, IngestService, PostOutcome

__all__ = ["BatchResult", "IngestService", "PostOutcome"]
