"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from feedsync.application.feed_runner import FeedRunner, FeedRunResult, get_feed_runner
from feedsync.application.feed_service import FeedService, get_feed_service
from feedsync.application.scheduler import FeedScheduler
from feedsync.application.tier_limits import TIER_LIMITS, TierLimits, check_tier_limits
from feedsync.application.version_manager import FeedVersionManager, VersionComparison

__all__ = [
    "FeedRunner",
    "FeedRunResult",
    "get_feed_runner",
    "FeedService",
    "get_feed_service",
    "FeedScheduler",
    "TIER_LIMITS",
    "TierLimits",
    "check_tier_limits",
    "FeedVersionManager",
    "VersionComparison",
]
