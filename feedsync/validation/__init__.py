"""Product validation against marketplace field rules."""

from feedsync.validation.rules import FIELD_RULES, GTIN_LENGTHS, REQUIRED_FIELDS, FieldRule
from feedsync.validation.validator import (
    FeedValidationResult,
    FeedValidator,
    ValidationResult,
    validate_feed,
)

__all__ = [
    "FIELD_RULES",
    "GTIN_LENGTHS",
    "REQUIRED_FIELDS",
    "FieldRule",
    "FeedValidationResult",
    "FeedValidator",
    "ValidationResult",
    "validate_feed",
]
