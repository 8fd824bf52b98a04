from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Archlog"
    debug: bool = False

    # GitHub
    github_base_url: str = "https://api.github.com"
    github_per_page: int = 50
    fetch_max_pages: int = 5  # Hard cap on listing pages per fetch call
    fetch_limit: int = 50  # Items per incremental sync
    first_sync_limit: int = 100
    first_sync_lookback_days: int = 90
    max_diff_bytes: int = 100 * 1024

    # Sieve
    sieve_threshold: float = 0.4

    # Cost Governor
    daily_extraction_limit: int = 20  # Provider calls per repo per UTC day
    extraction_batch_size: int = 5
    auto_extract: bool = True  # Extract pending candidates at the end of a sync

    # Text generation (via gen_ai_hub proxy)
    primary_model: str = "gpt-4o"
    fallback_model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_output_tokens: int = 4096
    provider_timeout_seconds: float = 60.0

    # USD per 1M tokens
    primary_input_rate: float = 2.5
    primary_output_rate: float = 10.0
    fallback_input_rate: float = 0.15
    fallback_output_rate: float = 0.6

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
