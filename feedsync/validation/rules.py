"""Marketplace field rules.

The rule set follows Google Merchant Center product data requirements.
It is illustrative rather than exhaustive; extend FIELD_RULES to add
checks for further attributes.
"""

import re
from dataclasses import dataclass

# Fields every product must carry, checked in this order.
REQUIRED_FIELDS: tuple[str, ...] = (
    "id",
    "title",
    "description",
    "link",
    "image_link",
    "price",
    "brand",
    "condition",
    "availability",
)

GTIN_LENGTHS: frozenset[int] = frozenset({8, 12, 13, 14})

# Identifier lengths beyond which marketplaces truncate the value.
IDENTIFIER_MAX_LENGTHS: dict[str, int] = {
    "mpn": 70,
    "brand": 70,
}


@dataclass(frozen=True)
class FieldRule:
    """Format constraints for one product field.

    Attributes:
        field: Product field name.
        max_length: Maximum number of characters.
        pattern: Regex the whole value must match.
        allowed_values: Closed set of accepted values.
    """

    field: str
    max_length: int | None = None
    pattern: re.Pattern[str] | None = None
    allowed_values: tuple[str, ...] | None = None


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("title", max_length=150),
    FieldRule("description", max_length=5000),
    FieldRule("link", pattern=re.compile(r"^https?://\S+$")),
    FieldRule(
        "image_link",
        pattern=re.compile(
            r"^https?://\S+\.(?:jpe?g|png|gif|webp)(?:\?\S*)?$",
            re.IGNORECASE,
        ),
    ),
    FieldRule("price", pattern=re.compile(r"^\d+(?:\.\d+)? [A-Z]{3}$")),
    FieldRule("condition", allowed_values=("new", "refurbished", "used")),
    FieldRule(
        "availability",
        allowed_values=("in stock", "out of stock", "preorder", "backorder"),
    ),
)
