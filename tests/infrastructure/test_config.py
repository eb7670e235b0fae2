"""Tests for settings and logging configuration."""

import structlog

from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.logging_setup import configure_logging


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self) -> None:
        """Scheduling defaults match the documented policy."""
        settings = Settings(_env_file=None)
        assert settings.max_concurrent_feeds == 3
        assert settings.retry_delays_minutes == [5, 15, 30]
        assert settings.stale_processing_minutes == 60
        assert settings.max_versions_to_keep == 5
        assert settings.health_degraded_threshold == 0.1

    def test_environment_override(self, monkeypatch) -> None:
        """Environment variables override defaults."""
        monkeypatch.setenv("MAX_CONCURRENT_FEEDS", "5")
        monkeypatch.setenv("RETRY_DELAYS_MINUTES", "[1, 2]")
        monkeypatch.setenv("REPOSITORY_BACKEND", "database")

        settings = Settings(_env_file=None)

        assert settings.max_concurrent_feeds == 5
        assert settings.retry_delays_minutes == [1, 2]
        assert settings.repository_backend == "database"


class TestLogging:
    """Tests for structlog configuration."""

    def test_json_renderer(self) -> None:
        """JSON logs end the processor chain with the JSON renderer."""
        configure_logging(level="warning", json_logs=True)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer(self) -> None:
        """Console logs end the chain with the console renderer."""
        configure_logging(level="INFO", json_logs=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
