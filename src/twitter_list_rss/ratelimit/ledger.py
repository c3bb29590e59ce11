"""Per-endpoint quota ledger fed by upstream rate-limit headers.

Upstream responses carry ``x-rate-limit-limit``, ``x-rate-limit-remaining``
and ``x-rate-limit-reset`` (epoch seconds).  The ledger keeps the latest
values per normalized endpoint and answers whether another call fits in the
current window.  A record is trusted only until its reset time; after that it
is dropped and the endpoint is treated as unknown, which is permissive.
"""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

_NUMERIC_SEGMENT = re.compile(r"/\d+")
_USER_SEGMENT = re.compile(r"/users/[^/]+/")
_LIST_SEGMENT = re.compile(r"/lists/[^/]+/")


def normalize_endpoint(endpoint: str) -> str:
    """Collapse path parameters so every list or user shares one quota key."""
    normalized = _NUMERIC_SEGMENT.sub("/:id", endpoint)
    normalized = _USER_SEGMENT.sub("/users/:id/", normalized, count=1)
    return _LIST_SEGMENT.sub("/lists/:id/", normalized, count=1)


def _iso(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


@dataclass
class QuotaRecord:
    """Call budget for one endpoint in the current window."""

    limit: int
    remaining: int
    reset_at: float
    last_updated: float


@dataclass(frozen=True)
class QuotaDecision:
    """Answer from :meth:`QuotaLedger.can_proceed`."""

    allowed: bool
    wait_seconds: float = 0.0
    reason: str = "no_limit_info"
    reset_at: float | None = None
    remaining: int | None = None

    @property
    def wait_ms(self) -> int:
        return int(self.wait_seconds * 1000)


class QuotaLedger:
    """Thread-safe map of normalized endpoint → :class:`QuotaRecord`."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._records: dict[str, QuotaRecord] = {}
        self._lock = threading.Lock()

    def record_response_headers(self, endpoint: str, limit: Any, remaining: Any, reset_epoch_seconds: Any) -> None:
        """Overwrite the record for ``endpoint``.

        Values may be ints or header strings; if any of them fails to parse
        the call is ignored.
        """
        try:
            parsed_limit = int(limit)
            parsed_remaining = int(remaining)
            parsed_reset = int(reset_epoch_seconds)
        except (TypeError, ValueError):
            logger.debug("Ignoring unparseable rate-limit values for %s", endpoint)
            return

        key = normalize_endpoint(endpoint)
        now = self._clock()
        with self._lock:
            self._records[key] = QuotaRecord(
                limit=parsed_limit,
                remaining=max(parsed_remaining, 0),
                reset_at=float(parsed_reset),
                last_updated=now,
            )
        logger.debug(
            "Rate limit info updated for %s: %d/%d remaining, resets %s",
            key,
            parsed_remaining,
            parsed_limit,
            _iso(parsed_reset),
            extra={
                "extra_data": {
                    "endpoint": key,
                    "limit": parsed_limit,
                    "remaining": parsed_remaining,
                    "window_ends_in_minutes": round((parsed_reset - now) / 60),
                }
            },
        )

    def can_proceed(self, endpoint: str) -> QuotaDecision:
        """Return whether a call to ``endpoint`` fits in the current window."""
        key = normalize_endpoint(endpoint)
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return QuotaDecision(allowed=True, reason="no_limit_info")
            if now >= record.reset_at:
                del self._records[key]
                logger.debug("Rate limit window for %s reset at %s", key, _iso(record.reset_at))
                return QuotaDecision(allowed=True, reason="window_reset")
            if record.remaining > 0:
                return QuotaDecision(
                    allowed=True,
                    reason="within_limits",
                    reset_at=record.reset_at,
                    remaining=record.remaining,
                )
            wait = max(record.reset_at - now, 0.0)

        logger.warning(
            "Rate limit exhausted for %s, window resets in %d min",
            key,
            math.ceil(wait / 60),
            extra={"extra_data": {"endpoint": key, "reset_time": _iso(record.reset_at), "wait_seconds": wait}},
        )
        return QuotaDecision(
            allowed=False,
            wait_seconds=wait,
            reason="rate_limit_exceeded",
            reset_at=record.reset_at,
            remaining=0,
        )

    def record_call_made(self, endpoint: str) -> None:
        """Optimistically spend one call; the next header update corrects it."""
        key = normalize_endpoint(endpoint)
        with self._lock:
            record = self._records.get(key)
            if record is not None and record.remaining > 0:
                record.remaining -= 1

    def get(self, endpoint: str) -> QuotaRecord | None:
        """Return a copy of the raw record, stale or not."""
        with self._lock:
            record = self._records.get(normalize_endpoint(endpoint))
            if record is None:
                return None
            return QuotaRecord(record.limit, record.remaining, record.reset_at, record.last_updated)

    def status(self, endpoint: str) -> dict[str, Any]:
        """Read-only view of one endpoint's quota for status reporting."""
        record = self.get(endpoint)
        if record is None:
            return {"has_info": False}
        now = self._clock()
        return {
            "has_info": True,
            "limit": record.limit,
            "remaining": record.remaining,
            "reset_at": _iso(record.reset_at),
            "seconds_until_reset": max(0.0, record.reset_at - now),
            "window_active": now < record.reset_at,
        }

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Status of every tracked endpoint, keyed by normalized pattern."""
        with self._lock:
            keys = list(self._records)
        return {key: self.status(key) for key in keys}
