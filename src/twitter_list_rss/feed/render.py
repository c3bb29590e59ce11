"""RSS 2.0 rendering for stored tweets."""

from __future__ import annotations

import html
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any

from twitter_list_rss.config import FeedConfig
from twitter_list_rss.data.models import ListInfo, Tweet

DC_NS = "http://purl.org/dc/elements/1.1/"
ATOM_NS = "http://www.w3.org/2005/Atom"

ET.register_namespace("dc", DC_NS)
ET.register_namespace("atom", ATOM_NS)

GENERATOR = "Twitter List RSS Converter"
DEFAULT_DESCRIPTION = "RSS feed generated from Twitter list"
TITLE_LENGTH = 50
FEED_TTL_MINUTES = 60

_TOKENS = r"(?P<hashtag>#\w+)|(?P<mention>@\w+)|(?P<newline>\n)"


def _parse_created_at(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _anchor(href: str, label: str) -> str:
    return f'<a href="{html.escape(href)}" target="_blank">{html.escape(label, quote=False)}</a>'


def linkify(text: str, urls: list[dict[str, Any]]) -> str:
    """Escape tweet text and turn URLs, hashtags and mentions into links.

    URL entities are matched first so a ``#fragment`` or ``@`` inside a link
    is never rewritten.
    """
    anchors = {
        u["url"]: _anchor(u.get("expanded_url") or u["url"], u.get("display_url") or u["url"])
        for u in urls
        if u.get("url")
    }
    alternatives = [_TOKENS]
    if anchors:
        literal = "|".join(re.escape(u) for u in sorted(anchors, key=len, reverse=True))
        alternatives.insert(0, f"(?P<url>{literal})")
    pattern = re.compile("|".join(alternatives))

    text = html.unescape(text)
    out: list[str] = []
    pos = 0
    for match in pattern.finditer(text):
        out.append(html.escape(text[pos : match.start()], quote=False))
        token = match.group()
        if match.lastgroup == "url":
            out.append(anchors[token])
        elif match.lastgroup == "hashtag":
            out.append(_anchor(f"https://twitter.com/hashtag/{token[1:]}", token))
        elif match.lastgroup == "mention":
            out.append(_anchor(f"https://twitter.com/{token[1:]}", token))
        else:
            out.append("<br>")
        pos = match.end()
    out.append(html.escape(text[pos:], quote=False))
    return "".join(out)


class RSSRenderer:
    """Turn stored tweets into an RSS 2.0 document."""

    def __init__(self, config: FeedConfig) -> None:
        self._config = config

    def generate_feed(
        self,
        tweets: list[Tweet],
        list_info: ListInfo | None = None,
        *,
        now: datetime | None = None,
    ) -> str:
        rss = ET.Element("rss", {"version": "2.0"})
        channel = ET.SubElement(rss, "channel")
        ET.SubElement(channel, "title").text = self._config.title
        ET.SubElement(channel, "description").text = self._channel_description(list_info)
        ET.SubElement(channel, "link").text = self._config.site_url or self._config.feed_url or "https://twitter.com"
        if self._config.feed_url:
            ET.SubElement(
                channel,
                f"{{{ATOM_NS}}}link",
                {"href": self._config.feed_url, "rel": "self", "type": "application/rss+xml"},
            )
        ET.SubElement(channel, "generator").text = GENERATOR
        ET.SubElement(channel, "language").text = "en"
        ET.SubElement(channel, "ttl").text = str(FEED_TTL_MINUTES)
        ET.SubElement(channel, "lastBuildDate").text = format_datetime(now or datetime.now(timezone.utc))

        for tweet in tweets:
            self._add_item(channel, tweet)

        body = ET.tostring(rss, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}'

    def _channel_description(self, list_info: ListInfo | None) -> str:
        if self._config.description:
            return self._config.description
        if list_info is not None:
            return f"RSS feed for Twitter list: {list_info.name}"
        return DEFAULT_DESCRIPTION

    def _add_item(self, channel: ET.Element, tweet: Tweet) -> None:
        item = ET.SubElement(channel, "item")
        ET.SubElement(item, "title").text = tweet_title(tweet)
        ET.SubElement(item, "description").text = format_content(tweet)
        ET.SubElement(item, "link").text = tweet.url
        ET.SubElement(item, "guid", {"isPermaLink": "false"}).text = tweet.id
        ET.SubElement(item, f"{{{DC_NS}}}creator").text = f"{tweet.author_name} (@{tweet.author_username})"
        published = _parse_created_at(tweet.created_at)
        if published is not None:
            ET.SubElement(item, "pubDate").text = format_datetime(published)
        for tag in hashtags(tweet.entities):
            ET.SubElement(item, "category").text = tag


def tweet_title(tweet: Tweet) -> str:
    title = tweet.text.replace("\n", " ")[:TITLE_LENGTH]
    if len(tweet.text) > TITLE_LENGTH:
        title += "..."
    return f"{tweet.author_name}: {html.unescape(title)}"


def format_content(tweet: Tweet) -> str:
    """HTML body for an item: author header, linked text, media, engagement."""
    name = html.escape(tweet.author_name, quote=False)
    username = html.escape(tweet.author_username, quote=False)
    content = f"<p><strong>{name} (@{username})</strong></p>"
    content += f"<p>{linkify(tweet.text, tweet.entities.get('urls') or [])}</p>"
    media = tweet.entities.get("media") or []
    if media:
        content += format_media(media)
    return content + format_metrics(tweet.public_metrics)


def format_media(media: list[dict[str, Any]]) -> str:
    parts = ['<div style="margin-top: 10px;">']
    for entry in media:
        kind = entry.get("type")
        url = html.escape(entry.get("url", ""))
        if kind == "photo":
            parts.append(f'<p><img src="{url}" alt="Tweet image" style="max-width: 100%; height: auto;"></p>')
        elif kind in ("video", "animated_gif"):
            parts.append(f'<p><a href="{url}" target="_blank">[{kind.upper()}]</a></p>')
    parts.append("</div>")
    return "".join(parts)


def format_metrics(metrics: dict[str, Any]) -> str:
    if not metrics:
        return ""
    return (
        '<div style="margin-top: 15px; padding: 10px; background-color: #f5f5f5;'
        ' border-radius: 5px; font-size: 0.9em;">'
        f"<strong>Engagement:</strong> "
        f"{metrics.get('like_count', 0)} likes, "
        f"{metrics.get('retweet_count', 0)} retweets, "
        f"{metrics.get('reply_count', 0)} replies, "
        f"{metrics.get('quote_count', 0)} quotes"
        "</div>"
    )


def hashtags(entities: dict[str, Any]) -> list[str]:
    return [h["tag"] for h in entities.get("hashtags") or [] if h.get("tag")]
