"""SQLite database for fetched tweets and service state."""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from twitter_list_rss.data.models import Tweet

logger = logging.getLogger(__name__)


class Database:
    """SQLite database for persisting tweets and key/value config.

    The connection is shared between the scheduler thread and the HTTP
    worker threads, so every statement runs under one lock.
    """

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_tables()
        logger.info("Connected to SQLite database at %s", path)

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS tweets (
                    id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    author_username TEXT NOT NULL,
                    author_name TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    public_metrics TEXT,
                    entities TEXT,
                    referenced_tweets TEXT,
                    fetched_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_tweets_created_at ON tweets(created_at DESC)")
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_tweets_fetched_at ON tweets(fetched_at DESC)")
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_tweets_author_id ON tweets(author_id)")
            self._conn.commit()

    # ------------------------------------------------------------------
    # Tweet methods
    # ------------------------------------------------------------------

    def save_items(self, items: list[Tweet]) -> None:
        """Insert or replace tweets in one transaction."""
        rows = [
            (
                t.id,
                t.text,
                t.author_id,
                t.author_username,
                t.author_name,
                t.created_at,
                json.dumps(t.public_metrics),
                json.dumps(t.entities),
                json.dumps(t.referenced_tweets),
            )
            for t in items
        ]
        with self._lock:
            self._conn.executemany(
                "INSERT OR REPLACE INTO tweets"
                " (id, text, author_id, author_username, author_name, created_at,"
                "  public_metrics, entities, referenced_tweets)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            self._conn.commit()

    def get_items(self, limit: int = 50) -> list[Tweet]:
        """Return the newest tweets, most recent first."""
        with self._lock:
            rows = self._conn.execute("SELECT * FROM tweets ORDER BY created_at DESC LIMIT ?", (limit,)).fetchall()
        return [Tweet.from_row(dict(row)) for row in rows]

    def get_latest_item_cursor(self) -> str | None:
        """Return the ID of the newest stored tweet, used as ``since_id``."""
        with self._lock:
            row = self._conn.execute("SELECT id FROM tweets ORDER BY created_at DESC LIMIT 1").fetchone()
        return row["id"] if row else None

    def count_items(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS count FROM tweets").fetchone()
        return int(row["count"])

    def get_oldest_item_date(self) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT created_at FROM tweets ORDER BY created_at ASC LIMIT 1").fetchone()
        return row["created_at"] if row else None

    def cleanup_old_items(self, retention_days: int = 30, *, now: datetime | None = None) -> int:
        """Delete tweets created more than ``retention_days`` ago. Returns count deleted."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM tweets WHERE created_at < ?",
                (cutoff.strftime("%Y-%m-%dT%H:%M:%S.000Z"),),
            )
            self._conn.commit()
        logger.info("Cleaned up %d old tweets", cursor.rowcount)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Config methods
    # ------------------------------------------------------------------

    def get_config(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_config(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, value),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()
