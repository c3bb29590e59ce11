"""Feed service wiring the upstream client, store, scheduler and renderer."""

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from twitter_list_rss.config import AppConfig
from twitter_list_rss.data.cache import FeedCache
from twitter_list_rss.data.client import TwitterClient
from twitter_list_rss.data.models import ListInfo
from twitter_list_rss.data.provider import UpstreamClient
from twitter_list_rss.db import Database
from twitter_list_rss.errors import Unauthorized
from twitter_list_rss.feed.render import RSSRenderer
from twitter_list_rss.ratelimit import QuotaLedger, RequestGovernor
from twitter_list_rss.scheduler import AdaptiveScheduler, PollResult, TimerFactory

logger = logging.getLogger(__name__)

LAST_FEED_BUILD_KEY = "last_rss_update"


class FeedService:
    """Coordinate the poll → persist → invalidate → render pipeline.

    Each call to :meth:`poll_cycle` fetches tweets newer than the stored
    cursor, saves them, and drops the cached feed document when anything
    new arrived.  The :class:`AdaptiveScheduler` drives ``poll_cycle`` in
    the background; :meth:`get_feed_document` serves the cached RSS.
    """

    def __init__(
        self,
        config: AppConfig,
        db_path: Path,
        *,
        client: UpstreamClient | None = None,
        ledger: QuotaLedger | None = None,
        clock: Callable[[], float] = time.time,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self._config = config
        self._list_id = config.resolved_list_id()
        self._ledger = ledger if ledger is not None else QuotaLedger(clock=clock)
        if client is None:
            config.validate_runtime()
            client = self._build_client(config, self._ledger)
        self._client = client
        self._db = Database(db_path)
        self._renderer = RSSRenderer(config.feed)
        self._cache = FeedCache(ttl=config.feed.cache_ttl)
        scheduler_kwargs: dict[str, Any] = {"clock": clock}
        if timer_factory is not None:
            scheduler_kwargs["timer_factory"] = timer_factory
        self._scheduler = AdaptiveScheduler(
            self._db,
            min_interval=config.scheduler.min_interval,
            max_interval=config.scheduler.max_interval,
            **scheduler_kwargs,
        )
        self._list_info: ListInfo | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Verify credentials and load list metadata.

        Raises :class:`~twitter_list_rss.errors.Unauthorized` when the
        upstream rejects the credentials.
        """
        if not self._client.verify_access():
            msg = "Invalid Twitter API credentials"
            raise Unauthorized(msg)
        self._list_info = self._client.fetch_collection_metadata(self._list_id)
        if self._list_info is not None:
            logger.info("Connected to list: %s (%d members)", self._list_info.name, self._list_info.member_count)

    def poll_cycle(self) -> PollResult:
        """Fetch new tweets since the last stored one, persist, invalidate the feed.

        Upstream errors propagate to the caller.
        """
        logger.info("Fetching tweets from Twitter...")
        cursor = self._db.get_latest_item_cursor()
        result = self._client.fetch_items_since(self._list_id, cursor)

        new_items = len(result.items)
        if new_items > 0:
            self._db.save_items(result.items)
            self._cache.invalidate()
            logger.info(
                "Successfully processed %d new tweets",
                new_items,
                extra={"extra_data": {"list_id": self._list_id, "new_items": new_items}},
            )
        else:
            logger.info("No new tweets found")

        return PollResult(new_item_count=new_items, total_items=self._db.count_items())

    def refresh(self) -> PollResult | None:
        """Run a manual poll through the scheduler's in-flight guard.

        Returns None when the poll failed; raises
        :class:`~twitter_list_rss.scheduler.PollInProgress` when one was
        already running.
        """
        return self._scheduler.trigger(self.poll_cycle)

    def get_feed_document(self) -> str:
        """Return the RSS document, regenerating it when the cache is stale."""
        document = self._cache.get()
        if document is not None:
            return document
        generation = self._cache.generation
        tweets = self._db.get_items(self._config.feed.max_items)
        document = self._renderer.generate_feed(tweets, self._list_info)
        self._db.set_config(LAST_FEED_BUILD_KEY, datetime.now(timezone.utc).isoformat())
        if self._cache.set(document, generation):
            logger.info("RSS feed generated with %d tweets (cached for %ds)", len(tweets), self._cache.ttl)
        else:
            logger.info("RSS feed generated with %d tweets (not cached, newer tweets arrived)", len(tweets))
        return document

    def start_scheduler(self) -> None:
        """Poll now and keep polling in the background."""
        self._scheduler.start(self.poll_cycle)

    def stop_scheduler(self) -> None:
        self._scheduler.stop()

    def cleanup(self) -> int:
        """Delete tweets older than the configured retention window."""
        removed = self._db.cleanup_old_items(self._config.storage.retention_days)
        if removed:
            self._cache.invalidate()
        return removed

    def get_status(self) -> dict[str, Any]:
        return {
            "status": "running",
            "list_info": self._list_info.model_dump() if self._list_info else None,
            "scheduler": self._scheduler.get_status().to_dict(),
            "database": {
                "total_tweets": self._db.count_items(),
                "oldest_tweet": self._db.get_oldest_item_date(),
            },
            "cache": {"age_seconds": self._cache.age(), "ttl": self._cache.ttl},
            "rate_limits": self._ledger.snapshot(),
            "last_updated": self._db.get_config(LAST_FEED_BUILD_KEY),
        }

    @property
    def scheduler(self) -> AdaptiveScheduler:
        return self._scheduler

    @property
    def db(self) -> Database:
        return self._db

    @property
    def ledger(self) -> QuotaLedger:
        return self._ledger

    @property
    def list_info(self) -> ListInfo | None:
        return self._list_info

    def close(self) -> None:
        """Stop scheduling and release the HTTP client and database."""
        self._scheduler.stop()
        close_client = getattr(self._client, "close", None)
        if callable(close_client):
            close_client()
        self._db.close()

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    @staticmethod
    def _build_client(config: AppConfig, ledger: QuotaLedger) -> TwitterClient:
        governor = RequestGovernor(ledger, conservative=config.scheduler.is_conservative)
        logger.info("Rate limit backoff mode: %s", "conservative" if config.scheduler.is_conservative else "default")
        return TwitterClient(
            config.twitter.bearer_token or "",
            governor=governor,
            base_url=config.twitter.api_base_url,
            max_results=config.twitter.max_results,
            max_retries=config.twitter.max_retries,
            timeout=config.twitter.timeout,
        )
