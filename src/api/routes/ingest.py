"""
Automated ingest endpoint and run inspection.
"""

import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from src.api.auth import bearer_scheme, check_ingest_token, verify_ingest_token
from src.api.dependencies import get_ingest_service, get_log_repository, get_run_repository
from src.api.models import IngestRequest, IngestResponse, PostOutcomeItem, RunResponse
from src.runs.repository import LogRepository, RunRepository
from src.services.ingest_service import IngestService

router = APIRouter()
logger = structlog.get_logger(__name__)


def _validation_detail(error: ValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in error.errors()
    ]


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Ingest a batch of posts",
    description="""
Process one batch of raw posts through the event pipeline.

`mode: "ping"` answers `pong` without authentication. Every other
request needs `Authorization: Bearer <INGEST_TOKEN>`.
    """,
)
async def ingest(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    service: IngestService = Depends(get_ingest_service),
) -> IngestResponse:
    """Authenticate, validate the payload and run the batch."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON",
        )
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object",
        )

    try:
        body = IngestRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_detail(e))

    if body.mode == "ping":
        return IngestResponse(success=True, message="pong")

    check_ingest_token(credentials)

    try:
        batch = body.to_batch()
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_detail(e))

    logger.info(
        "Ingest batch received",
        run_id=batch.run_id,
        batch=f"{batch.batch_index}/{batch.total_batches}",
        posts=len(batch.posts),
        force_import=body.force_import,
    )

    result = await service.process_batch(batch, force_import=body.force_import)
    progress = result.progress

    return IngestResponse(
        success=True,
        message=(
            f"Batch {result.batch_index}/{result.total_batches} {result.status}: "
            f"{progress.posts_added} added, {progress.posts_updated} updated, "
            f"{progress.posts_rejected} rejected, {progress.posts_skipped} skipped, "
            f"{progress.posts_failed} failed"
        ),
        run_id=result.run_id,
        batch_status=result.status,
        run_status=result.run_status,
        stats=progress.to_dict(),
        outcomes=[PostOutcomeItem(**o.to_dict()) for o in result.outcomes],
    )


@router.get(
    "/runs/{run_id}",
    response_model=RunResponse,
    summary="Get a scrape run",
    dependencies=[Depends(verify_ingest_token)],
)
async def get_run(
    run_id: str,
    runs: RunRepository = Depends(get_run_repository),
) -> RunResponse:
    run = await runs.get(run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run not found: {run_id}")
    return RunResponse(**run.to_dict())


@router.post(
    "/runs/{run_id}/cancel",
    response_model=RunResponse,
    summary="Cancel a running scrape run",
    description="Batches in flight stop at their next cancellation check.",
    dependencies=[Depends(verify_ingest_token)],
)
async def cancel_run(
    run_id: str,
    runs: RunRepository = Depends(get_run_repository),
) -> RunResponse:
    run = await runs.get(run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run not found: {run_id}")
    if run.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Run {run_id} is already {run.status}",
        )
    await runs.mark_cancelled(run_id)
    logger.info("Run cancelled", run_id=run_id)
    cancelled = await runs.get(run_id)
    return RunResponse(**(cancelled or run).to_dict())


@router.get(
    "/runs/{run_id}/logs",
    summary="List the persisted log of a run",
    dependencies=[Depends(verify_ingest_token)],
)
async def get_run_logs(
    run_id: str,
    limit: int = Query(default=500, ge=1, le=5000),
    logs: LogRepository = Depends(get_log_repository),
) -> dict:
    entries = await logs.list_for_run(run_id, limit=limit)
    return {
        "run_id": run_id,
        "count": len(entries),
        "entries": [{k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in e.items()} for e in entries],
    }
