"""Prometheus metrics for feed generation."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("feedsync", "feedsync application info")
app_info.info({"name": "feedsync"})

# Run metrics
feed_runs_total = Counter(
    "feed_runs_total",
    "Total number of feed generation runs",
    ["format", "outcome"],
)

feed_run_duration_seconds = Histogram(
    "feed_run_duration_seconds",
    "Time spent generating a feed",
    ["format"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
)

# Product metrics
products_processed_total = Counter(
    "feed_products_processed_total",
    "Total number of products processed during feed runs",
    ["format", "outcome"],
)

# Scheduler metrics
feed_retries_total = Counter(
    "feed_retries_total",
    "Total number of failed feed runs by resulting action",
    ["action"],
)

stale_feeds_reclaimed_total = Counter(
    "feed_stale_reclaimed_total",
    "Total number of feeds reclaimed from a stale processing lease",
)

# Version metrics
feed_versions_created_total = Counter(
    "feed_versions_created_total",
    "Total number of feed versions created",
    ["format", "kind"],
)
