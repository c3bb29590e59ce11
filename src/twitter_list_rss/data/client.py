"""Twitter API v2 client for list timelines.

Wraps the REST endpoints with ``httpx`` and routes every request through the
:class:`~twitter_list_rss.ratelimit.RequestGovernor`, so quota accounting and
429 retries happen in one place.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from twitter_list_rss.data.models import FetchResult, ListInfo, Tweet
from twitter_list_rss.errors import UnknownUpstreamError, UpstreamError
from twitter_list_rss.ratelimit import QuotaLedger, RequestGovernor, extract_rate_limit_info

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.twitter.com/2"

TWEET_FIELDS = "created_at,public_metrics,entities,referenced_tweets,author_id"
USER_FIELDS = "username,name,verified,profile_image_url"
EXPANSIONS = "author_id,referenced_tweets.id"
LIST_FIELDS = "name,description,member_count,follower_count"


class TwitterClient:
    """Read-only app-context client for the Twitter API v2.

    Every public method delegates to :meth:`_get` so that all requests go
    through a single governed chokepoint that is easy to fake in tests
    (pass an ``httpx.MockTransport`` as ``transport``).
    """

    def __init__(
        self,
        bearer_token: str,
        *,
        governor: RequestGovernor | None = None,
        base_url: str = DEFAULT_BASE_URL,
        max_results: int = 100,
        max_retries: int = 3,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._governor = governor if governor is not None else RequestGovernor(QuotaLedger())
        self._max_results = max_results
        self._max_retries = max_retries
        self._http = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {bearer_token}", "User-Agent": "twitter-list-rss"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_items_since(self, list_id: str, cursor: str | None = None) -> FetchResult:
        """Return tweets on the list newer than ``cursor`` (a tweet ID).

        Raises :class:`~twitter_list_rss.errors.UpstreamError` subclasses.
        """
        params: dict[str, Any] = {
            "max_results": self._max_results,
            "tweet.fields": TWEET_FIELDS,
            "user.fields": USER_FIELDS,
            "expansions": EXPANSIONS,
        }
        if cursor:
            params["since_id"] = cursor

        logger.info("Fetching tweets for list %s%s", list_id, f" since {cursor}" if cursor else "")
        try:
            response = self._get(f"/lists/{list_id}/tweets", params)
        except UpstreamError as exc:
            logger.error("Error fetching tweets for list %s: %s", list_id, exc)
            raise

        payload = self._json(response)
        rate_limit = extract_rate_limit_info(response)
        data = payload.get("data") or []
        if not data:
            logger.info("No new tweets found")
            return FetchResult(items=[], rate_limit=rate_limit)

        users = {str(u["id"]): u for u in (payload.get("includes") or {}).get("users", []) if "id" in u}
        tweets = [Tweet.from_api(t, users) for t in data]
        logger.info("Fetched %d tweets", len(tweets))
        return FetchResult(items=tweets, rate_limit=rate_limit)

    def fetch_collection_metadata(self, list_id: str) -> ListInfo | None:
        """Return list metadata, or None if it cannot be fetched."""
        try:
            response = self._get(f"/lists/{list_id}", {"list.fields": LIST_FIELDS})
            data = self._json(response).get("data")
        except UpstreamError as exc:
            logger.error("Error fetching list info for %s: %s", list_id, exc)
            return None
        if not data:
            return None
        return ListInfo.from_api(data)

    def verify_access(self) -> bool:
        """Return True if the configured credentials are accepted."""
        try:
            self._get("/users/me", {})
        except UpstreamError as exc:
            logger.error("Failed to verify Twitter API credentials: %s", exc)
            return False
        logger.info("Twitter API credentials verified successfully")
        return True

    @property
    def governor(self) -> RequestGovernor:
        return self._governor

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> TwitterClient:
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        def request() -> httpx.Response:
            response = self._http.get(path, params=params)
            response.raise_for_status()
            return response

        return self._governor.governed_call(path, request, self._max_retries)

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            msg = f"Malformed JSON from {response.request.url.path}"
            raise UnknownUpstreamError(msg, status_code=response.status_code) from exc
        return payload if isinstance(payload, dict) else {}
