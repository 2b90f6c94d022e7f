"""Configuration management for the automotive briefing bot."""

import os
from dataclasses import dataclass

from .models import Source
from .sources import CAR_SOURCES, load_sources


@dataclass
class FetchConfig:
    """Configuration for the feed aggregation pipeline."""

    timeout: float = 8.0
    summary_max_length: int = 280
    max_workers: int = 8
    default_limit: int = 8
    max_limit: int = 20


@dataclass
class TelegramConfig:
    """Configuration for Telegram Bot API."""

    bot_token: str
    chat_id: str
    parse_mode: str = "MarkdownV2"
    api_base: str = "https://api.telegram.org"
    timeout: float = 15.0
    disable_web_page_preview: bool = False


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Main configuration manager."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.feed_timeout = _env_float("FEED_TIMEOUT_SECONDS", 8.0)
        self.summary_max_length = _env_int("SUMMARY_MAX_LENGTH", 280)
        self.max_workers = _env_int("MAX_WORKERS", 8)
        self.default_limit = _env_int("DEFAULT_ARTICLE_LIMIT", 8)
        self.max_limit = _env_int("MAX_ARTICLE_LIMIT", 20)
        self.sources_file = os.getenv("SOURCES_FILE", "")
        self.telegram_api_base = os.getenv(
            "TELEGRAM_API_BASE", "https://api.telegram.org"
        )
        self.telegram_timeout = _env_float("TELEGRAM_TIMEOUT_SECONDS", 15.0)
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.metrics_enabled = os.getenv("METRICS_ENABLED", "true").strip().lower() in {
            "1",
            "true",
            "yes",
            "on",
        }

    def get_sources(self) -> tuple[Source, ...]:
        """Get the source registry, from SOURCES_FILE when set."""
        if self.sources_file:
            return load_sources(self.sources_file)
        return CAR_SOURCES

    def get_fetch_config(self) -> FetchConfig:
        """Get aggregation pipeline configuration."""
        return FetchConfig(
            timeout=self.feed_timeout,
            summary_max_length=max(self.summary_max_length, 1),
            max_workers=max(self.max_workers, 1),
            default_limit=max(self.default_limit, 1),
            max_limit=max(self.max_limit, 1),
        )

    def get_telegram_config(self, bot_token: str, chat_id: str) -> TelegramConfig:
        """Get Telegram configuration for a single delivery."""
        return TelegramConfig(
            bot_token=bot_token,
            chat_id=chat_id,
            api_base=self.telegram_api_base.rstrip("/"),
            timeout=self.telegram_timeout,
        )
