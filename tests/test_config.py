"""Tests for config loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError
from twitter_list_rss.config import AppConfig, SchedulerConfig, load_config
from twitter_list_rss.errors import ConfigError

SAMPLE_YAML = """\
twitter:
  list_id: "123456"
  max_results: 50
  max_retries: 2

scheduler:
  min_interval: 30
  max_interval: 240

feed:
  title: Python People
  feed_url: https://feeds.example/rss
  cache_ttl: 120

storage:
  retention_days: 14

monitoring:
  structured_logging: true
  log_level: DEBUG
  port: 8080
"""


def test_load_config_from_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(SAMPLE_YAML)
    config = load_config(config_file)
    assert config.twitter.list_id == "123456"
    assert config.twitter.max_results == 50
    assert config.twitter.max_retries == 2
    assert config.scheduler.min_interval == 30
    assert config.scheduler.max_interval == 240
    assert config.feed.title == "Python People"
    assert config.feed.cache_ttl == 120
    assert config.storage.retention_days == 14
    assert config.monitoring.structured_logging is True
    assert config.monitoring.port == 8080


def test_load_empty_config(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")
    assert load_config(config_file) == AppConfig()


def test_load_config_reads_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("DOTENV_ONLY_TOKEN=from-dotenv\n")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("twitter:\n  list_id: '1'\n  bearer_token_env: DOTENV_ONLY_TOKEN\n")
    config = load_config(config_file)
    assert config.twitter.bearer_token == "from-dotenv"


def test_default_config() -> None:
    config = AppConfig()
    assert config.scheduler.min_interval == 60
    assert config.scheduler.max_interval == 480
    assert config.feed.max_items == 50
    assert config.feed.cache_ttl == 300
    assert config.monitoring.port == 3000


def test_scheduler_bounds_validated() -> None:
    with pytest.raises(ValidationError):
        SchedulerConfig(min_interval=120, max_interval=60)


@pytest.mark.parametrize(
    ("min_interval", "flag", "expected"),
    [(60, None, False), (120, None, True), (60, True, True), (180, False, False)],
)
def test_conservative_mode(min_interval: float, flag: bool | None, expected: bool) -> None:
    cfg = SchedulerConfig(min_interval=min_interval, max_interval=480, conservative_mode=flag)
    assert cfg.is_conservative is expected


def test_list_id_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TWITTER_LIST_ID", "999")
    assert AppConfig().resolved_list_id() == "999"
    config = AppConfig(twitter={"list_id": "111"})
    assert config.resolved_list_id() == "111"


def test_validate_runtime_reports_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TWITTER_BEARER_TOKEN", raising=False)
    monkeypatch.delenv("TWITTER_LIST_ID", raising=False)
    with pytest.raises(ConfigError, match="TWITTER_BEARER_TOKEN, TWITTER_LIST_ID"):
        AppConfig().validate_runtime()


def test_validate_runtime_passes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TWITTER_BEARER_TOKEN", "token")
    AppConfig(twitter={"list_id": "1"}).validate_runtime()
