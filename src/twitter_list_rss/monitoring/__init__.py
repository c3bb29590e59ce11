"""Logging setup for the feed service."""
