"""Pydantic data models for Twitter API v2 JSON payloads."""

import json
from typing import Any

from pydantic import BaseModel, Field

from twitter_list_rss.ratelimit.governor import RateLimitInfo


def _str_field(data: dict[str, Any], key: str) -> str:
    """Extract an optional string field, defaulting to empty string."""
    return data.get(key) or ""


def _int_field(data: dict[str, Any], key: str) -> int:
    """Extract an optional integer field, defaulting to 0."""
    return int(data.get(key) or 0)


def _json_column(value: Any, default: Any) -> Any:
    """Decode a JSON text column, falling back to ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    return value


class Tweet(BaseModel):
    """A single tweet, flattened with its author's display fields."""

    id: str
    text: str
    author_id: str = ""
    author_username: str = "unknown"
    author_name: str = "Unknown User"
    author_verified: bool = False
    author_profile_image: str = ""
    created_at: str = ""
    public_metrics: dict[str, Any] = Field(default_factory=dict)
    entities: dict[str, Any] = Field(default_factory=dict)
    referenced_tweets: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any], users: dict[str, dict[str, Any]] | None = None) -> "Tweet":
        """Parse a tweet object, joining author fields from the ``includes.users`` map."""
        author = (users or {}).get(str(data.get("author_id", "")), {})
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            author_id=_str_field(data, "author_id"),
            author_username=author.get("username") or "unknown",
            author_name=author.get("name") or "Unknown User",
            author_verified=bool(author.get("verified", False)),
            author_profile_image=_str_field(author, "profile_image_url"),
            created_at=_str_field(data, "created_at"),
            public_metrics=data.get("public_metrics") or {},
            entities=data.get("entities") or {},
            referenced_tweets=data.get("referenced_tweets") or [],
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Tweet":
        """Rebuild a tweet from a ``tweets`` table row."""
        return cls(
            id=str(row["id"]),
            text=row["text"],
            author_id=row.get("author_id") or "",
            author_username=row.get("author_username") or "unknown",
            author_name=row.get("author_name") or "Unknown User",
            created_at=row.get("created_at") or "",
            public_metrics=_json_column(row.get("public_metrics"), {}),
            entities=_json_column(row.get("entities"), {}),
            referenced_tweets=_json_column(row.get("referenced_tweets"), []),
        )

    @property
    def url(self) -> str:
        return f"https://twitter.com/{self.author_username}/status/{self.id}"


class ListInfo(BaseModel):
    """Metadata for a Twitter list."""

    id: str
    name: str
    description: str = ""
    member_count: int = 0
    follower_count: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ListInfo":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            description=_str_field(data, "description"),
            member_count=_int_field(data, "member_count"),
            follower_count=_int_field(data, "follower_count"),
        )


class FetchResult(BaseModel):
    """New tweets from one list timeline request plus the response's quota headers."""

    items: list[Tweet] = Field(default_factory=list)
    rate_limit: RateLimitInfo | None = None
