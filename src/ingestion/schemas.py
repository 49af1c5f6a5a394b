"""
Input schemas for the event-scout pipeline.

CRITICAL: RawPostRecord is the immutable input contract shared by the API,
the CLI and the pipeline service. Dataset exports use camelCase keys, so
every field accepts both its snake_case name and the camelCase alias.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class EngagementMetrics(BaseModel):
    """Engagement counts reported by the source platform."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    likes: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("likes", "likesCount", "likes_count"),
    )
    comments: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("comments", "commentsCount", "comments_count"),
    )

    @property
    def engagement_score(self) -> int:
        """Single engagement number used as the grouping tie-break."""
        return self.likes + self.comments


class RawPostRecord(BaseModel):
    """
    One social-media post as delivered by the dataset fetcher.

    Immutable: the pipeline derives new records from it but never edits it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    post_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("post_id", "postId", "id"),
        description="External post identifier from the source platform",
    )
    owner_handle: str = Field(
        default="",
        validation_alias=AliasChoices("owner_handle", "ownerUsername", "owner_username"),
        description="Handle of the account that published the post",
    )
    caption: str = Field(default="", description="Raw caption text")
    image_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl", "displayUrl"),
        description="Optional reference to the post image",
    )
    location_hint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("location_hint", "locationName", "location_name"),
        description="Location tag attached to the post by the platform, if any",
    )
    short_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("short_code", "shortCode"),
    )
    posted_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("posted_at", "timestamp", "postedAt"),
        description="UTC timestamp of publication on the platform",
    )
    engagement: EngagementMetrics = Field(default_factory=EngagementMetrics)

    @field_validator("caption", mode="before")
    @classmethod
    def coerce_caption(cls, v: Any) -> str:
        """Missing captions are treated as empty text."""
        if v is None:
            return ""
        return str(v)

    @field_validator("owner_handle", mode="before")
    @classmethod
    def normalize_handle(cls, v: Any) -> str:
        """Lowercase the handle and drop a leading @."""
        if v is None:
            return ""
        return str(v).strip().lstrip("@").lower()

    @field_validator("posted_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are interpreted as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_dataset_item(cls, item: dict[str, Any]) -> "RawPostRecord":
        """Build a record from a flat dataset item with top-level engagement counts."""
        data = dict(item)
        if "engagement" not in data:
            data["engagement"] = {
                "likes": data.get("likesCount", data.get("likes_count", 0)) or 0,
                "comments": data.get("commentsCount", data.get("comments_count", 0)) or 0,
            }
        return cls.model_validate(data)

    @property
    def caption_hash(self) -> str:
        """Stable digest of the caption used to detect unchanged re-ingests."""
        return hashlib.sha256(self.caption.encode("utf-8")).hexdigest()

    @property
    def post_url(self) -> str:
        """Public URL of the post."""
        return f"https://www.instagram.com/p/{self.short_code or self.post_id}/"


class BatchRequest(BaseModel):
    """A batch of posts plus the run metadata needed to account for it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    run_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("run_id", "runId"),
    )
    batch_index: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("batch_index", "batchNumber"),
    )
    total_batches: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("total_batches", "totalBatches"),
    )
    dataset_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("dataset_id", "datasetId"),
    )
    first_batch: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("first_batch", "isFirstBatch"),
        description="Explicit first-batch flag; derived from batch_index when unset",
    )
    last_batch: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("last_batch", "isLastBatch"),
        description="Explicit last-batch flag; derived from the batch counts when unset",
    )
    posts: list[RawPostRecord] = Field(default_factory=list)
    received_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_first_batch(self) -> bool:
        if self.first_batch is not None:
            return self.first_batch
        return self.batch_index == 1

    @property
    def is_last_batch(self) -> bool:
        if self.last_batch is not None:
            return self.last_batch
        return self.batch_index >= self.total_batches
