"""Structured JSON logging for twitter-list-rss."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from twitter_list_rss.config import MonitoringConfig

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")
# extra_data keys emitted at the top level of each JSON entry.
TOP_LEVEL_FIELDS = ("endpoint", "list_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    ``extra_data`` passed via ``extra=`` lands under ``"data"``, except the
    quota endpoint and list id, which are lifted next to ``"message"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data = getattr(record, "extra_data", None)
        if isinstance(data, dict):
            data = dict(data)
            for key in TOP_LEVEL_FIELDS:
                if key in data:
                    entry[key] = data.pop(key)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = type(record.exc_info[1]).__name__
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_structured_logging(*, log_file: Path | None = None, level: int = logging.INFO) -> None:
    """Route the root logger through :class:`JSONFormatter` on stderr, plus ``log_file`` when given."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file)))

    formatter = JSONFormatter()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def setup_logging(cfg: MonitoringConfig) -> None:
    """Configure logging from the monitoring section of the config.

    Structured mode emits JSON lines; otherwise a plain text format is used.
    HTTP client chatter is capped at WARNING in both modes.
    """
    level = logging.getLevelName(cfg.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if cfg.structured_logging:
        log_file = Path(cfg.log_file) if cfg.log_file else None
        setup_structured_logging(log_file=log_file, level=level)
    else:
        logging.basicConfig(level=level, format=PLAIN_FORMAT, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
