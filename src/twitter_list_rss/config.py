"""Configuration loading and validation."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from twitter_list_rss.errors import ConfigError

CONSERVATIVE_MIN_INTERVAL = 120.0


class TwitterConfig(BaseModel):
    """Upstream API configuration."""

    list_id: str = ""
    bearer_token_env: str = "TWITTER_BEARER_TOKEN"
    api_base_url: str = "https://api.twitter.com/2"
    max_results: int = Field(default=100, ge=5, le=100)
    max_retries: int = Field(default=3, ge=0)
    timeout: float = 30.0

    @property
    def bearer_token(self) -> str | None:
        return os.environ.get(self.bearer_token_env) or None


class SchedulerConfig(BaseModel):
    """Adaptive polling configuration. Intervals are in minutes."""

    min_interval: float = Field(default=60.0, gt=0)
    max_interval: float = Field(default=480.0, gt=0)
    conservative_mode: bool | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "SchedulerConfig":
        if self.max_interval < self.min_interval:
            msg = f"max_interval ({self.max_interval}) must be >= min_interval ({self.min_interval})"
            raise ValueError(msg)
        return self

    @property
    def is_conservative(self) -> bool:
        """Explicit flag if set, otherwise assume the stricter tier for slow schedules."""
        if self.conservative_mode is not None:
            return self.conservative_mode
        return self.min_interval >= CONSERVATIVE_MIN_INTERVAL


class FeedConfig(BaseModel):
    """RSS document configuration."""

    title: str = "Twitter List RSS Feed"
    description: str | None = None
    feed_url: str | None = None
    site_url: str | None = None
    max_items: int = 50
    cache_ttl: int = 300


class StorageConfig(BaseModel):
    """Tweet storage configuration."""

    retention_days: int = 30


class MonitoringConfig(BaseModel):
    """Logging and HTTP server configuration."""

    structured_logging: bool = False
    log_file: str | None = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    twitter: TwitterConfig = Field(default_factory=TwitterConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    def resolved_list_id(self) -> str:
        """List ID from config, falling back to ``TWITTER_LIST_ID``."""
        return self.twitter.list_id or os.environ.get("TWITTER_LIST_ID", "")

    def validate_runtime(self) -> None:
        """Raise :class:`ConfigError` naming every missing required setting."""
        missing = []
        if not self.twitter.bearer_token:
            missing.append(self.twitter.bearer_token_env)
        if not self.resolved_list_id():
            missing.append("TWITTER_LIST_ID")
        if missing:
            msg = f"Missing required environment variables: {', '.join(missing)}"
            raise ConfigError(msg)


def load_config(path: Path) -> AppConfig:
    """Load config from a YAML file."""
    load_dotenv(path.parent / ".env", override=False)
    return AppConfig(**(yaml.safe_load(path.read_text()) or {}))
