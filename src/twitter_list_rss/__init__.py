"""Twitter list to RSS feed service."""

__version__ = "0.1.0"
