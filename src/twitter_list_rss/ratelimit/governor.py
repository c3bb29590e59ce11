"""Request governor: quota-aware dispatch with principled retries.

Every outbound upstream call is wrapped in :meth:`RequestGovernor.governed_call`.
Before dispatch the governor waits until the :class:`QuotaLedger` allows the
call; after a successful call it feeds the response's rate-limit headers back
into the ledger.  Only "too many requests" failures are retried, either by
waiting for the advertised window reset or, when no reset time is known, by
exponential backoff with jitter.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from twitter_list_rss.errors import QuotaExhausted, classify_error
from twitter_list_rss.ratelimit.ledger import QuotaLedger, normalize_endpoint

logger = logging.getLogger(__name__)

T = TypeVar("T")

LIMIT_HEADER = "x-rate-limit-limit"
REMAINING_HEADER = "x-rate-limit-remaining"
RESET_HEADER = "x-rate-limit-reset"

SAFETY_BUFFER_SECONDS = 1.0
JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class RateLimitInfo:
    """Raw rate-limit header values from one response."""

    limit: str
    remaining: str
    reset: str


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff parameters, in seconds."""

    base_delay: float
    max_delay: float
    min_delay: float

    @classmethod
    def aggressive(cls) -> BackoffPolicy:
        # 5, 10, 20, 40, 60 min
        return cls(base_delay=5 * 60.0, max_delay=60 * 60.0, min_delay=60.0)

    @classmethod
    def conservative(cls) -> BackoffPolicy:
        # 10, 20, 40, 80, 120 min
        return cls(base_delay=10 * 60.0, max_delay=120 * 60.0, min_delay=5 * 60.0)

    @classmethod
    def for_mode(cls, conservative: bool) -> BackoffPolicy:
        return cls.conservative() if conservative else cls.aggressive()


# ----------------------------------------------------------------------
# Header extraction
# ----------------------------------------------------------------------
#
# The shape in which rate-limit headers reach us depends on the transport:
# an httpx.Response, a parsed result object, or a plain dict from a fake or
# another client library.  None of these are a documented contract, so the
# strategies are tried in order and the first hit wins.


def _lookup(headers: Any, name: str) -> Any:
    if not isinstance(headers, Mapping) and not hasattr(headers, "get"):
        return None
    value = headers.get(name)
    if value is None and isinstance(headers, Mapping):
        for key, candidate in headers.items():
            if isinstance(key, str) and key.lower() == name:
                return candidate
    return value


def _from_headers(headers: Any) -> RateLimitInfo | None:
    values = [_lookup(headers, name) for name in (LIMIT_HEADER, REMAINING_HEADER, RESET_HEADER)]
    if any(v is None for v in values):
        return None
    limit, remaining, reset = (str(v) for v in values)
    return RateLimitInfo(limit=limit, remaining=remaining, reset=reset)


def _from_parsed_attribute(result: Any) -> RateLimitInfo | None:
    info = getattr(result, "rate_limit", None)
    return info if isinstance(info, RateLimitInfo) else None


def _from_headers_attribute(result: Any) -> RateLimitInfo | None:
    headers = getattr(result, "headers", None)
    return _from_headers(headers) if headers is not None else None


def _from_nested_mapping(result: Any) -> RateLimitInfo | None:
    if not isinstance(result, Mapping):
        return None
    nested = result.get("rate_limit")
    if isinstance(nested, RateLimitInfo):
        return nested
    if isinstance(nested, Mapping):
        limit, remaining, reset = nested.get("limit"), nested.get("remaining"), nested.get("reset")
        if None not in (limit, remaining, reset):
            return RateLimitInfo(limit=str(limit), remaining=str(remaining), reset=str(reset))
    headers = result.get("headers")
    return _from_headers(headers) if headers is not None else None


def _from_flat_mapping(result: Any) -> RateLimitInfo | None:
    return _from_headers(result) if isinstance(result, Mapping) else None


_EXTRACTION_STRATEGIES: tuple[Callable[[Any], RateLimitInfo | None], ...] = (
    _from_parsed_attribute,
    _from_headers_attribute,
    _from_nested_mapping,
    _from_flat_mapping,
)


def extract_rate_limit_info(result: Any) -> RateLimitInfo | None:
    """Pull rate-limit headers out of whatever a transport returned.

    Returns ``None`` when no strategy recognises the shape, which leaves the
    ledger untouched for that endpoint.
    """
    if result is None:
        return None
    for strategy in _EXTRACTION_STRATEGIES:
        info = strategy(result)
        if info is not None:
            return info
    return None


# ----------------------------------------------------------------------
# Governor
# ----------------------------------------------------------------------


class RequestGovernor:
    """Throttle and retry calls against a quota-bearing upstream."""

    def __init__(
        self,
        ledger: QuotaLedger,
        *,
        conservative: bool = False,
        policy: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._ledger = ledger
        self._conservative = conservative
        self._policy = policy if policy is not None else BackoffPolicy.for_mode(conservative)
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def ledger(self) -> QuotaLedger:
        return self._ledger

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def await_quota(self, endpoint: str) -> None:
        """Block until the ledger allows a call to ``endpoint``."""
        while True:
            decision = self._ledger.can_proceed(endpoint)
            if decision.allowed:
                return
            delay = decision.wait_seconds + SAFETY_BUFFER_SECONDS
            logger.warning(
                "Waiting %.0fs for rate limit window on %s to reset",
                delay,
                normalize_endpoint(endpoint),
            )
            self._sleep(delay)
            logger.info("Rate limit wait completed for %s", normalize_endpoint(endpoint))

    def compute_backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), in seconds."""
        delay = min(self._policy.base_delay * (2**attempt), self._policy.max_delay)
        jitter = delay * JITTER_FRACTION * (self._rng.random() - 0.5) * 2
        return max(delay + jitter, self._policy.min_delay)

    def governed_call(self, endpoint: str, operation: Callable[[], T], max_retries: int = 3) -> T:
        """Run ``operation`` under the quota ledger, retrying on 429s.

        Raises the translated :class:`~twitter_list_rss.errors.UpstreamError`
        for any other failure, or the last :class:`QuotaExhausted` tagged with
        the total attempt count once ``max_retries`` retries are used up.
        """
        attempt = 0
        while True:
            self.await_quota(endpoint)
            try:
                result = operation()
            except Exception as exc:  # noqa: BLE001
                error = classify_error(exc)
                error.attempts = attempt + 1
                retry = isinstance(error, QuotaExhausted)
                if retry:
                    self._record(endpoint, error.response)
                    if attempt >= max_retries:
                        logger.error("Giving up on %s after %d attempts", normalize_endpoint(endpoint), error.attempts)
                        retry = False
                if not retry:
                    if error is exc:
                        raise
                    raise error from exc
                self._delay_before_retry(endpoint, attempt)
                attempt += 1
                continue

            self._record(endpoint, result)
            self._ledger.record_call_made(endpoint)
            return result

    def _record(self, endpoint: str, result: Any) -> None:
        info = extract_rate_limit_info(result)
        if info is not None:
            self._ledger.record_response_headers(endpoint, info.limit, info.remaining, info.reset)

    def _delay_before_retry(self, endpoint: str, attempt: int) -> None:
        decision = self._ledger.can_proceed(endpoint)
        if not decision.allowed and decision.reset_at is not None:
            self.await_quota(endpoint)
            return
        delay = self.compute_backoff(attempt)
        logger.warning(
            "Using %s exponential backoff for %s: attempt %d, sleeping %d min",
            "extra-conservative" if self._conservative else "conservative",
            normalize_endpoint(endpoint),
            attempt,
            round(delay / 60),
            extra={"extra_data": {"endpoint": endpoint, "attempt": attempt, "backoff_seconds": delay}},
        )
        self._sleep(delay)
