"""
Request and response models for the ingest API.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.ingestion.schemas import BatchRequest, RawPostRecord


class IngestRequest(BaseModel):
    """
    Body of ``POST /ingest``.

    Field names accept both the snake_case form and the camelCase form
    sent by the dataset fetcher.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mode: Literal["ingest", "ping"] = Field(
        default="ingest",
        description="ping checks connectivity without authentication",
    )
    posts: list[dict[str, Any]] = Field(
        default_factory=list,
        max_length=500,
        description="Raw dataset items (0-500)",
    )
    run_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("run_id", "runId"),
    )
    batch_number: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("batch_number", "batchNumber"),
    )
    total_batches: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("total_batches", "totalBatches"),
    )
    is_first_batch: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("is_first_batch", "isFirstBatch"),
    )
    is_last_batch: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("is_last_batch", "isLastBatch"),
    )
    dataset_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("dataset_id", "datasetId"),
    )
    force_import: bool = Field(
        default=False,
        validation_alias=AliasChoices("force_import", "forceImport"),
        description="Reprocess unchanged posts and keep events that already ended",
    )

    def to_batch(self) -> BatchRequest:
        """
        Convert to a pipeline batch.

        Raises:
            pydantic.ValidationError: If a post item is malformed
        """
        return BatchRequest(
            run_id=self.run_id,
            batch_index=self.batch_number,
            total_batches=self.total_batches,
            dataset_id=self.dataset_id,
            first_batch=self.is_first_batch,
            last_batch=self.is_last_batch,
            posts=[RawPostRecord.from_dataset_item(item) for item in self.posts],
        )


class PostOutcomeItem(BaseModel):
    """What happened to one post of the batch."""

    post_id: str
    status: str = Field(..., description="added, updated, rejected, skipped or failed")
    review_tier: str | None = None
    reason: str | None = None
    dedup_role: str = "none"
    venue_source: str | None = None


class IngestResponse(BaseModel):
    """Response model for ingest and ping."""

    success: bool = True
    message: str = Field(..., description="Human-readable summary")
    run_id: str | None = None
    batch_status: str | None = Field(
        default=None,
        description="completed, cancelled or timed_out",
    )
    run_status: str | None = Field(
        default=None,
        description="Run status after the batch was accounted",
    )
    stats: dict[str, int] = Field(
        default_factory=dict,
        description="Counters for this batch",
    )
    outcomes: list[PostOutcomeItem] = Field(default_factory=list)


class RunResponse(BaseModel):
    """One scrape run with its running totals."""

    run_id: str
    status: str
    run_type: str
    dataset_id: str | None = None
    posts_added: int = 0
    posts_updated: int = 0
    posts_skipped: int = 0
    posts_failed: int = 0
    posts_rejected: int = 0
    accounts_found: int = 0
    error_message: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    last_heartbeat: str | None = None


class ComponentHealth(BaseModel):
    """Health status of a single infrastructure component."""

    status: str = Field(
        ...,
        description="Component status: healthy or unhealthy",
    )
    latency_ms: float | None = Field(
        default=None,
        description="Check latency in milliseconds",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional component details",
    )


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-component health",
    )
    review_tiers: dict[str, int] = Field(
        default_factory=dict,
        description="Stored posts per review tier",
    )
    ingest_token_configured: bool = Field(
        default=False,
        description="Whether automated ingest can authenticate",
    )
    version: str = Field(
        default="0.1.0",
        description="Service version",
    )


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )
