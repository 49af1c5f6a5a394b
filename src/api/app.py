"""
FastAPI application factory for the ingest API.
"""

import time
import uuid
from contextlib import asynccontextmanager

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.dependencies import cleanup_dependencies
from src.api.routes import health, ingest

logger = structlog.get_logger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the shared database pool on shutdown."""
    logger.info("Ingest API starting up", version=API_VERSION)

    yield

    logger.info("Ingest API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Build the ingest API with request correlation and error handlers.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Event Scout Ingest API",
        description="""
API for turning social-media posts into structured event records.

## Authentication

`POST /ingest` (except `mode: "ping"`) and the `/runs` endpoints require
an `Authorization: Bearer <INGEST_TOKEN>` header.
        """,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Database and review-queue status"},
            {"name": "ingest", "description": "Automated post ingestion and scrape runs"},
        ],
    )

    @app.middleware("http")
    async def correlate_requests(request: Request, call_next):
        # The dataset fetcher sends its own id; otherwise mint one
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or uuid.uuid4().hex
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(asyncpg.PostgresError)
    async def database_error_handler(request: Request, exc: asyncpg.PostgresError):
        logger.error(
            "Database error",
            path=request.url.path,
            sqlstate=getattr(exc, "sqlstate", None),
            error=str(exc),
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database unavailable", "error_type": "database"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(ingest.router, tags=["ingest"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "Event Scout Ingest API", "version": API_VERSION, "docs": "/docs"}

    return app
