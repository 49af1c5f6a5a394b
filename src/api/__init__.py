"""
FastAPI ingest service.

Provides REST API for automated ingestion with:
- POST /ingest - Process a batch of posts (or answer a ping)
- GET /runs/{run_id} - Inspect, cancel and read the log of a scrape run
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
