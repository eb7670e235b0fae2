"""feedsync: scheduled product feed generation."""

__version__ = "0.1.0"
