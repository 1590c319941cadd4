"""
Configuration management for the messaging system.

Uses Pydantic settings for environment variable support.
"""
import logging
import sys
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Messaging settings loaded from JSMS_* environment variables."""

    # Messages
    DEFAULT_TTL_MS: Optional[int] = Field(
        default=None,
        description="Time to live applied when send() gets no expiration, None means never expire"
    )

    # Logging
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = {
        "env_prefix": "JSMS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure the root logger from settings."""
    config = config or settings
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.WARNING),
        format=config.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Global settings instance
settings = Settings()
