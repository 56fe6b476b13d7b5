"""
MODULE OVERVIEW:
This module provides application-wide configuration using Pydantic Settings.
Where it fits: every HTTP call, the chat loop's retry policy and the CLI read from here.

WHAT IS HAPPENING HERE:
We declare the service host, the transport deadlines and the retry budget in one place.
The long poll on `/events` is held open by the service until something happens, so its
deadline is deliberately much larger than the one used for fire-and-forget actions.
Every value can be overridden with an `ANONCHAT_`-prefixed environment variable or a `.env` file.
"""
import sys

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ANONCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        # Tolerate unrelated env vars so the client runs out of the box
        extra="ignore",
    )

    SCHEME: str = "http"
    BASE_HOST: str = "omegle.com"
    LOG_HOST: str = "logs.omegle.com"
    USER_AGENT: str = "anonchat/1.0"
    LOG_LEVEL: str = "INFO"

    # Transport deadlines
    REQUEST_TIMEOUT_S: float = 10.0
    POLL_TIMEOUT_S: float = 60.0
    POLL_INTERVAL_S: float = 0.0

    # Chat loop retry policy (the core itself never retries)
    MAX_RETRIES: int = 5
    RETRY_BASE_DELAY_S: float = 1.0
    RETRY_MAX_DELAY_S: float = 32.0


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a stderr sink at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.LOG_LEVEL).upper())
