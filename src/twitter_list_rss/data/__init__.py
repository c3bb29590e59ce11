"""Upstream data access: models, client protocol, httpx client, feed cache."""
