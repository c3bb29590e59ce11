"""Tests for SQLite database layer."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
from twitter_list_rss.data.models import Tweet
from twitter_list_rss.db import Database


def _tweet(tweet_id: str, created_at: str, **kwargs) -> Tweet:
    return Tweet(id=tweet_id, text=f"tweet {tweet_id}", author_id="42", created_at=created_at, **kwargs)


@pytest.fixture
def db():
    with tempfile.TemporaryDirectory() as tmpdir:
        database = Database(Path(tmpdir) / "test.db")
        yield database
        database.close()


def test_db_initializes_tables(db):
    assert db._conn is not None
    assert db.count_items() == 0
    assert db.get_latest_item_cursor() is None


def test_db_creates_parent_directory(tmp_path):
    with Database(tmp_path / "nested" / "dir" / "tweets.db") as database:
        assert database.count_items() == 0
    assert (tmp_path / "nested" / "dir" / "tweets.db").exists()


def test_save_and_get_items(db):
    db.save_items(
        [
            _tweet("1", "2024-01-01T10:00:00.000Z", public_metrics={"like_count": 5}),
            _tweet("2", "2024-01-02T10:00:00.000Z", entities={"hashtags": [{"tag": "py"}]}),
        ]
    )
    items = db.get_items()
    assert [t.id for t in items] == ["2", "1"]
    assert items[0].entities == {"hashtags": [{"tag": "py"}]}
    assert items[1].public_metrics == {"like_count": 5}
    assert db.count_items() == 2


def test_get_items_respects_limit(db):
    db.save_items([_tweet(str(i), f"2024-01-0{i}T00:00:00.000Z") for i in range(1, 6)])
    assert [t.id for t in db.get_items(limit=2)] == ["5", "4"]


def test_save_items_replaces_duplicates(db):
    db.save_items([_tweet("1", "2024-01-01T10:00:00.000Z")])
    db.save_items([Tweet(id="1", text="edited", created_at="2024-01-01T10:00:00.000Z")])
    items = db.get_items()
    assert len(items) == 1
    assert items[0].text == "edited"


def test_latest_item_cursor_is_newest_tweet(db):
    db.save_items(
        [
            _tweet("300", "2024-01-01T10:00:00.000Z"),
            _tweet("100", "2024-03-01T10:00:00.000Z"),
        ]
    )
    assert db.get_latest_item_cursor() == "100"
    assert db.get_oldest_item_date() == "2024-01-01T10:00:00.000Z"


def test_cleanup_old_items(db):
    db.save_items(
        [
            _tweet("1", "2024-01-01T00:00:00.000Z"),
            _tweet("2", "2024-03-01T00:00:00.000Z"),
        ]
    )
    removed = db.cleanup_old_items(30, now=datetime(2024, 3, 10, tzinfo=timezone.utc))
    assert removed == 1
    assert [t.id for t in db.get_items()] == ["2"]


def test_config_roundtrip(db):
    assert db.get_config("current_interval") is None
    db.set_config("current_interval", "72.0")
    db.set_config("current_interval", "86.4")
    assert db.get_config("current_interval") == "86.4"


def test_db_context_manager():
    with tempfile.TemporaryDirectory() as tmpdir:
        with Database(Path(tmpdir) / "test.db") as database:
            database.set_config("k", "v")
        with Database(Path(tmpdir) / "test.db") as database:
            assert database.get_config("k") == "v"
