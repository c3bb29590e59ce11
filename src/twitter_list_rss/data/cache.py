"""Freshness-bounded cache for the rendered feed document."""

import threading
import time
from typing import Callable


class FeedCache:
    """Hold one rendered document for at most ``ttl`` seconds.

    A poll that stores new tweets calls :meth:`invalidate` so the next
    request regenerates the document instead of serving a stale one.
    Every invalidation bumps :attr:`generation`; a document rendered from
    rows read under an older generation is refused by :meth:`set`.
    """

    def __init__(self, ttl: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._document: str | None = None
        self._built_at: float | None = None
        self._generation = 0
        self._lock = threading.Lock()

    def get(self) -> str | None:
        with self._lock:
            if self._document is None or self._built_at is None:
                return None
            if self._clock() - self._built_at > self._ttl:
                self._document = None
                self._built_at = None
                return None
            return self._document

    def set(self, document: str, generation: int | None = None) -> bool:
        """Store ``document``; returns False if it was rendered before the last invalidation."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._document = document
            self._built_at = self._clock()
            return True

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._document = None
            self._built_at = None

    def age(self) -> float | None:
        """Seconds since the cached document was built, or None if empty."""
        with self._lock:
            if self._built_at is None:
                return None
            return self._clock() - self._built_at

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def ttl(self) -> float:
        return self._ttl
