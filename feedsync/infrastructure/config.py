"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Persistence
    database_url: str = "postgresql+asyncpg://feedsync:feedsync_dev_password@db:5432/feedsync"
    repository_backend: str = "memory"  # "memory" or "database"

    # Authentication
    feedsync_api_key: str = "dev-api-key-change-in-production"

    # Catalog (Shopify Admin GraphQL)
    shopify_shop_domain: str = "example.myshopify.com"
    shopify_access_token: str = ""
    shopify_api_version: str = "2024-10"
    catalog_timeout_seconds: float = 30.0
    catalog_page_size: int = 100

    # Scheduling
    max_concurrent_feeds: int = 3
    default_max_retries: int = 3
    retry_delays_minutes: list[int] = [5, 15, 30]
    stale_processing_minutes: int = 60
    scheduler_enabled: bool = False
    scheduler_interval_minutes: int = 5

    # Versioning
    max_versions_to_keep: int = 5

    # Monitoring
    monitor_batch_size: int = 100
    health_degraded_threshold: float = 0.1

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
