"""Runtime settings for the marketplace service.

Values come from ``MARKETPLACE_``-prefixed environment variables or a local
``.env`` file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "development"
    log_level: str | None = None  # Derived from environment when unset
    log_to_file: bool = False
    log_dir: str = "logs"

    # Optimistic stock reservation is re-run this many times before giving up
    reservation_max_attempts: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="MARKETPLACE_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
