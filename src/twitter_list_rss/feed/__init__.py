"""Feed document rendering."""

from twitter_list_rss.feed.render import RSSRenderer

__all__ = ["RSSRenderer"]
