"""Tests for the feed document cache."""

from twitter_list_rss.data.cache import FeedCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_cache_stores_and_retrieves():
    cache = FeedCache(ttl=60)
    cache.set("<rss/>")
    assert cache.get() == "<rss/>"


def test_cache_empty_by_default():
    cache = FeedCache(ttl=60)
    assert cache.get() is None
    assert cache.age() is None


def test_cache_expires_after_ttl():
    clock = FakeClock()
    cache = FeedCache(ttl=300, clock=clock)
    cache.set("<rss/>")
    clock.now += 300
    assert cache.get() == "<rss/>"
    clock.now += 1
    assert cache.get() is None
    assert cache.age() is None


def test_cache_invalidate():
    cache = FeedCache(ttl=60)
    cache.set("<rss/>")
    cache.invalidate()
    assert cache.get() is None


def test_cache_age():
    clock = FakeClock()
    cache = FeedCache(ttl=60, clock=clock)
    cache.set("<rss/>")
    clock.now += 12.5
    assert cache.age() == 12.5
    assert cache.ttl == 60


def test_cache_refuses_document_from_before_invalidate():
    cache = FeedCache(ttl=60)
    generation = cache.generation
    cache.invalidate()
    assert cache.set("<rss>stale</rss>", generation) is False
    assert cache.get() is None

    assert cache.set("<rss>fresh</rss>", cache.generation) is True
    assert cache.get() == "<rss>fresh</rss>"
