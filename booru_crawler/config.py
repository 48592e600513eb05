"""
Configuration management for the Booru Crawler.
"""

import os
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TAG_TEMPLATE = "{people}, {character}, {copyright}, {general}, {meta}, {artist}"


class Settings(BaseSettings):
    """Application settings with validation."""

    # Board credentials
    danbooru_username: str = Field(default="")
    danbooru_api_key: str = Field(default="")
    board: str = Field(default="danbooru")

    # HTTP Configuration
    request_timeout: float = Field(default=30.0, gt=0.0)
    user_agent: str = Field(default="booru-crawler")
    retry_delay: float = Field(default=1.0, gt=0.0)
    rate_limit_retries: int = Field(default=5, ge=0, description="Retries of a rate-limited page before giving up")
    requests_per_second: Optional[float] = Field(default=None, gt=0.0)

    # Paging Configuration
    page_limit: int = Field(default=200, gt=0, le=200, description="Posts per page (API maximum is 200)")

    # Pipeline Configuration
    connections: int = Field(default=4, gt=0, description="Concurrent media downloads")
    threads: int = Field(default=os.cpu_count() or 4, gt=0, description="Concurrent decode/encode workers")
    write_concurrency: int = Field(default=4, gt=0)

    # Caption Configuration
    tag_template: str = Field(default=DEFAULT_TAG_TEMPLATE)
    keep_out_of_context_meta: bool = Field(default=False)

    # Failure ledger
    failure_file: str = Field(default="crawl_failures.json")

    # Logging Configuration
    log_level: str = Field(default="INFO")

    @field_validator("board")
    @classmethod
    def validate_board(cls, v):
        """Ensure the board is supported."""
        supported_boards = ["danbooru", "safebooru"]
        if v.lower() not in supported_boards:
            raise ValueError(f"BOARD must be one of: {supported_boards}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @property
    def request_delay(self) -> float:
        """Seconds to wait between two page requests."""
        if self.requests_per_second:
            return 1.0 / self.requests_per_second
        return 0.0

    def has_credentials(self) -> bool:
        return bool(self.danbooru_username and self.danbooru_api_key)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


# Global settings instance
settings = Settings()
