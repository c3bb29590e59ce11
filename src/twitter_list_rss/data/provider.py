"""UpstreamClient protocol for the list timeline source.

The live httpx client (TwitterClient) and the fakes used in tests satisfy
this protocol via structural typing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from twitter_list_rss.data.models import FetchResult, ListInfo


class UpstreamClient(Protocol):
    """Structural protocol for list timeline sources.

    Any class implementing these three methods can back the feed service.
    """

    def fetch_items_since(self, list_id: str, cursor: str | None) -> FetchResult: ...

    def fetch_collection_metadata(self, list_id: str) -> ListInfo | None: ...

    def verify_access(self) -> bool: ...
