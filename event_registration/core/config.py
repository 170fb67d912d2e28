"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``EVENTS_``-prefixed environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="EVENTS_"
    )

    app_name: str = "Event Registration Service"
    debug: bool = False

    # Events created without an explicit timezone get this one.
    default_timezone: str = "America/New_York"

    # Discovery
    default_upcoming_limit: int = 10
    default_popular_limit: int = 10

    # Write path: how many times a command is replayed after a version conflict
    max_write_retries: int = 3

    # Cross-event statistics run their sub-queries on this many threads
    statistics_workers: int = 5

    seed_sample_data: bool = False


settings = Settings()
