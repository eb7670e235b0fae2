"""Background scheduling of feed runs."""
