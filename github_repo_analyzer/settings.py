"""Application settings loaded from environment variables and .env file."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXCLUSION_PATTERNS = [
    ".git",
    ".github",
    "target",
    "build",
    "dist",
    "vendor",
    "third_party",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "*.egg-info",
]


class Settings(BaseSettings):
    """Settings for the repository analyzer."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    github_token: str | None = None
    api_base: str = "https://api.github.com"

    max_concurrent_requests: int = Field(default=4, gt=0)
    retry_attempts: int = Field(default=3, gt=0)
    chunk_max_bytes: int = Field(default=100_000, gt=0)
    exclusion_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUSION_PATTERNS))
    max_file_size: int = Field(default=1_000_000, gt=0)

    request_timeout: float = Field(default=30.0, gt=0)
    # Used when a rate-limit response carries neither retry-after nor a reset time
    default_cooldown: float = Field(default=60.0, ge=0)
    backoff_base: float = Field(default=1.0, ge=0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
