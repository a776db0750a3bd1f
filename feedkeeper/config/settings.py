"""Application settings with environment variable support."""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class SortOrder(str, Enum):
    """Ordering applied to feeds read from storage or aggregated after a refresh."""
    AZ = "az"            # Title ascending
    ZA = "za"            # Title descending
    CUSTOM = "custom"    # Order of the configured feed URLs
    NEWEST = "newest"    # Most recently fetched first
    OLDEST = "oldest"    # Least recently fetched first
    UNREAD = "unread"    # Recognized, not implemented


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FK_",  # FK_FEED_URLS, FK_REFRESH_INTERVAL_SECONDS, etc.
    )

    # Paths - computed from base_dir
    base_dir: Path = _BASE_DIR
    data_dir: Path = _BASE_DIR / "data"
    database_path: Optional[Path] = None

    # Feeds
    feed_urls: List[str] = []
    sort_order: SortOrder = SortOrder.CUSTOM

    # Refresh
    refresh_interval_seconds: int = 0  # 0 disables periodic refresh
    fetch_timeout_seconds: int = 15
    fetch_max_attempts: int = 1
    user_agent: str = "feedkeeper/0.1"

    # Storage
    cache_enabled: bool = True

    @field_validator("refresh_interval_seconds", "fetch_timeout_seconds")
    @classmethod
    def _not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be zero or positive")
        return value

    @field_validator("fetch_max_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        return max(1, value)

    @property
    def db_path(self) -> Path:
        """Location of the durable feed cache."""
        return self.database_path or self.data_dir / "feedkeeper.db"

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL: a file when caching is enabled, in-memory otherwise."""
        if not self.cache_enabled:
            return "sqlite://"
        return f"sqlite:///{self.db_path}"


settings = Settings()
