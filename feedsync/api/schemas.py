"""API schemas for feedsync.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from feedsync.domain.entities import PlanTier
from feedsync.domain.state_machines import FeedStatus, VersionStatus
from feedsync.domain.value_objects import FeedFormat


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


# ============================================================================
# Feed Schemas
# ============================================================================


class FeedCreateRequest(BaseModel):
    """Request to create a feed."""

    shop_id: str = Field(..., min_length=1, description="Owning shop")
    name: str = Field(..., min_length=1, max_length=255, description="Feed name")
    plan_tier: PlanTier = Field(default=PlanTier.BASIC, description="Plan tier of the shop")
    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Feed settings (country, currency, format, update_frequency, selection)",
    )


class FeedResponse(BaseModel):
    """Feed details."""

    id: str
    shop_id: str
    name: str
    status: FeedStatus
    plan_tier: PlanTier
    settings: dict[str, Any]
    last_sync: datetime | None = None
    next_run_at: datetime | None = None
    live_version_id: str | None = None
    content_url: str = Field(..., description="Public URL of the live feed document")
    created_at: datetime
    updated_at: datetime


class FeedListResponse(BaseModel):
    """List of feeds."""

    items: list[FeedResponse]
    total: int


# ============================================================================
# Version Schemas
# ============================================================================


class VersionSchema(BaseModel):
    """Version metadata (content is served separately)."""

    id: str
    feed_id: str
    version: int
    format: FeedFormat
    status: VersionStatus
    stats: dict[str, Any]
    rollback_from: str | None = None
    note: str | None = None
    created_by: str
    created_at: datetime
    is_live: bool = False


class VersionListResponse(BaseModel):
    """Version history of a feed, newest first."""

    items: list[VersionSchema]
    total: int


class RollbackRequest(BaseModel):
    """Request to restore an earlier version."""

    version_id: str = Field(..., description="Version to restore")


class DiffSchema(BaseModel):
    """Field names added and removed between two versions."""

    added: list[str]
    removed: list[str]


class VersionComparisonResponse(BaseModel):
    """Differences between two versions (b - a)."""

    version_a: str
    version_b: str
    product_diff: dict[str, int]
    error_diff: DiffSchema
    warning_diff: DiffSchema
    time_gap_seconds: float


# ============================================================================
# Run Schemas
# ============================================================================


class FeedRunResponse(BaseModel):
    """Outcome of one feed run."""

    feed_id: str
    status: str = Field(..., description="success, partial, degraded, error or skipped")
    version_id: str | None = None
    version: int | None = None
    total_products: int = 0
    valid_products: int = 0
    invalid_products: int = 0
    health: str | None = None
    duration_seconds: float | None = None
    error: str | None = None


class CronRunResponse(BaseModel):
    """Outcome of a scheduled pass."""

    results: list[FeedRunResponse]
    started: int
