"""
Configuration management for sprig.

This module provides SprigSettings class that handles defaults for the adapter
factory, the companion plugins and the CLI, with support for environment variables,
.env files, and sensible defaults.

Environment variables are automatically loaded with SPRIG_ prefix.
Example: SPRIG_CLIENT=aiohttp
"""

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class SprigSettings(BaseSettings):
    """
    Configuration settings for sprig with environment variable support.

    This class automatically loads configuration from:
    - Environment variables (with SPRIG_ prefix)
    - .env files
    - Default values for optional settings

    Example:
        # From environment
        export SPRIG_CLIENT=requests
        export SPRIG_RETRY_LIMIT=4

        # In code
        settings = SprigSettings()
    """

    client: str = "httpx"  # default, can be 'aiohttp' or 'requests'
    timeout: float = 30.0
    request_timeout: float | None = Field(
        default=None, description="Abort requests after this many seconds"
    )
    retry_limit: int = Field(default=2, ge=0)
    retry_backoff_limit: float | None = None
    retry_max_retry_after: float | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SPRIG_", env_file=".env", extra="ignore"
    )
