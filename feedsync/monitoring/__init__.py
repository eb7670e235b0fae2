"""Feed run monitoring and metrics."""

from feedsync.monitoring.monitor import FeedHealth, FeedMetrics, FeedMonitor, RunSummary

__all__ = [
    "FeedHealth",
    "FeedMetrics",
    "FeedMonitor",
    "RunSummary",
]
