"""Upstream error taxonomy and classification."""

from __future__ import annotations

from typing import Any

import httpx


class UpstreamError(Exception):
    """Base class for failures talking to the upstream API.

    ``attempts`` is the number of dispatches made before the error was
    raised; the request governor updates it when retries run out.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        attempts: int = 1,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.attempts = attempts
        self.response = response

    def __str__(self) -> str:
        if self.attempts > 1:
            return f"{self.message} (after {self.attempts} attempts)"
        return self.message


class QuotaExhausted(UpstreamError):
    """Upstream answered 429 Too Many Requests."""

    retryable = True


class NotFound(UpstreamError):
    """Upstream answered 404; the identifier is wrong."""


class Unauthorized(UpstreamError):
    """Upstream answered 401; the credentials are wrong."""


class TransientNetwork(UpstreamError):
    """Connection-level failure (DNS, refused, timeout)."""

    retryable = True


class UnknownUpstreamError(UpstreamError):
    """Any other upstream failure, surfaced as-is."""


class ConfigError(Exception):
    """Raised when required runtime configuration is missing."""


_STATUS_ERRORS: dict[int, tuple[type[UpstreamError], str]] = {
    429: (QuotaExhausted, "Rate limit exceeded. Will retry later."),
    404: (NotFound, "List not found. Please check the list ID."),
    401: (Unauthorized, "Unauthorized. Please check your Twitter API credentials."),
}


def classify_error(exc: BaseException) -> UpstreamError:
    """Translate a transport or HTTP exception into an :class:`UpstreamError`.

    Already-classified errors are returned unchanged.
    """
    if isinstance(exc, UpstreamError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        cls, message = _STATUS_ERRORS.get(status, (UnknownUpstreamError, f"Upstream returned HTTP {status}"))
        return cls(message, status_code=status, response=exc.response)
    if isinstance(exc, httpx.TransportError):
        return TransientNetwork(f"Network error: {exc}")
    return UnknownUpstreamError(str(exc) or type(exc).__name__)
