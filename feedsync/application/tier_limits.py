"""Plan tier limits.

Each plan caps the number of feeds a shop may own, the total number of
explicitly selected products across those feeds and the products a single
feed may render.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from feedsync.domain.entities import Feed, PlanTier


@dataclass(frozen=True)
class TierLimits:
    """Limits of one plan tier."""

    product_limit: int
    feed_limit: int
    products_per_feed_limit: int


TIER_LIMITS: dict[PlanTier, TierLimits] = {
    PlanTier.BASIC: TierLimits(product_limit=1000, feed_limit=2, products_per_feed_limit=1000),
    PlanTier.PROFESSIONAL: TierLimits(
        product_limit=5000, feed_limit=5, products_per_feed_limit=2500
    ),
    PlanTier.ADVANCED: TierLimits(
        product_limit=10000, feed_limit=20, products_per_feed_limit=5000
    ),
}


def limits_for(tier: PlanTier) -> TierLimits:
    """Limits of a tier, falling back to Basic."""
    return TIER_LIMITS.get(tier, TIER_LIMITS[PlanTier.BASIC])


@dataclass
class TierCheckResult:
    """Outcome of a tier limit check."""

    allowed: bool
    limits: TierLimits
    current_feeds: int = 0
    current_products: int = 0
    reason: str | None = None


def check_tier_limits(
    tier: PlanTier,
    existing_feeds: Sequence[Feed],
    product_count: int = 0,
    new_feed: bool = False,
) -> TierCheckResult:
    """Check whether a shop may add a feed or products.

    Args:
        tier: Plan tier of the shop.
        existing_feeds: Feeds the shop already owns.
        product_count: Explicitly selected products being added.
        new_feed: Whether a new feed is being created.

    Returns:
        TierCheckResult; ``reason`` explains a refusal.
    """
    limits = limits_for(tier)
    current_feeds = len(existing_feeds)
    current_products = sum(len(f.settings.product_ids) for f in existing_feeds)

    result = TierCheckResult(
        allowed=True,
        limits=limits,
        current_feeds=current_feeds,
        current_products=current_products,
    )

    if new_feed and current_feeds >= limits.feed_limit:
        result.allowed = False
        result.reason = (
            f"You've reached the maximum number of feeds ({limits.feed_limit}) "
            f"for your {tier.value} plan."
        )
    elif product_count and current_products + product_count > limits.product_limit:
        result.allowed = False
        result.reason = (
            f"Adding {product_count} products would exceed your {tier.value} plan "
            f"limit of {limits.product_limit} products."
        )
    elif product_count and product_count > limits.products_per_feed_limit:
        result.allowed = False
        result.reason = (
            f"The feed exceeds the {limits.products_per_feed_limit} products per feed "
            f"limit for your {tier.value} plan."
        )

    return result
