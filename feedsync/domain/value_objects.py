"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. Feed settings are validated with pydantic every time
they are read from storage; product records and validation issues are
plain frozen dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enumerations
# ============================================================================


class FeedFormat(str, Enum):
    """Output formats a feed can be rendered to."""

    XML = "XML"
    CSV = "CSV"
    TSV = "TSV"


class UpdateFrequency(str, Enum):
    """How often a feed is regenerated."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def interval_hours(self) -> int:
        """Minimum number of hours between two runs."""
        return _FREQUENCY_HOURS[self]


_FREQUENCY_HOURS: dict[UpdateFrequency, int] = {
    UpdateFrequency.HOURLY: 1,
    UpdateFrequency.DAILY: 24,
    UpdateFrequency.WEEKLY: 168,
}


# ============================================================================
# Feed Settings
# ============================================================================


class FeedSettings(BaseModel):
    """Structured feed configuration.

    Holds the marketplace target, output format, product selection and the
    scheduler's retry sub-state. Unknown keys are rejected so that a
    malformed settings blob fails loudly when the feed is loaded.

    Attributes:
        country: Target marketplace country (ISO 3166-1 alpha-2).
        language: Target language (ISO 639-1).
        currency: Target currency (ISO 4217).
        format: Output format.
        update_frequency: Regeneration cadence.
        collection_id: Restrict products to one catalog collection.
        product_ids: Explicit product allow-list.
        excluded_product_ids: Explicit product deny-list.
        include_variants: Emit one record per variant instead of per product.
        custom_attributes: Static attributes added to every product.
        metafield_mappings: Catalog metafield ("namespace.key") to feed attribute.
        retry_count: Consecutive failed runs.
        max_retries: Failed runs tolerated before the feed is marked failed.
        next_retry: Earliest time the next retry may start.
        last_error: Message of the most recent failure.
        failed_at: When the feed was marked permanently failed.
    """

    model_config = ConfigDict(extra="forbid")

    country: str = Field(default="US", min_length=2, max_length=2)
    language: str = Field(default="en", min_length=2, max_length=5)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    format: FeedFormat = FeedFormat.XML
    update_frequency: UpdateFrequency = UpdateFrequency.DAILY

    collection_id: str | None = None
    product_ids: list[str] = Field(default_factory=list)
    excluded_product_ids: list[str] = Field(default_factory=list)
    include_variants: bool = False
    custom_attributes: dict[str, str] = Field(default_factory=dict)
    metafield_mappings: dict[str, str] = Field(default_factory=dict)

    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    next_retry: datetime | None = None
    last_error: str | None = None
    failed_at: datetime | None = None

    @field_validator("country", "currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    def cleared_retry_state(self) -> "FeedSettings":
        """Return a copy with the retry sub-state reset."""
        return self.model_copy(
            update={"retry_count": 0, "next_retry": None, "last_error": None}
        )

    def to_storage(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict for persistence."""
        return self.model_dump(mode="json")


# ============================================================================
# Product Record
# ============================================================================


@dataclass(frozen=True)
class ProductRecord:
    """Normalized projection of a catalog item.

    Built once per run by the catalog collaborator and consumed by the
    validator and renderer. Empty strings mean "absent".
    """

    id: str
    title: str = ""
    description: str = ""
    link: str = ""
    image_link: str = ""
    price: str = ""
    brand: str = ""
    condition: str = ""
    availability: str = ""
    gtin: str = ""
    mpn: str = ""
    item_group_id: str = ""
    custom_attributes: dict[str, str] = field(default_factory=dict, hash=False)

    def get(self, name: str) -> str:
        """Look up a standard field or custom attribute by name.

        Args:
            name: Field name.

        Returns:
            Field value, or empty string when absent.
        """
        if name in _PRODUCT_FIELDS:
            return getattr(self, name) or ""
        return self.custom_attributes.get(name, "")


_PRODUCT_FIELDS = frozenset(
    {
        "id",
        "title",
        "description",
        "link",
        "image_link",
        "price",
        "brand",
        "condition",
        "availability",
        "gtin",
        "mpn",
        "item_group_id",
    }
)


# ============================================================================
# Validation Issues
# ============================================================================


class IssueSeverity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation error or warning.

    Errors exclude the product from the rendered feed; warnings never do.
    """

    field: str
    message: str
    product_id: str | None = None
    severity: IssueSeverity = IssueSeverity.ERROR

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "field": self.field,
            "message": self.message,
            "product_id": self.product_id,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> "ValidationIssue":
        """Create from a stored dictionary."""
        return cls(
            field=data.get("field", ""),
            message=data.get("message", ""),
            product_id=data.get("product_id"),
            severity=severity,
        )
