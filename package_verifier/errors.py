"""Retryable error kinds raised by the package-manager verifiers."""

from __future__ import annotations

from typing import Final

import aiohttp

_TRANSIENT_MARKERS: Final[tuple[str, ...]] = (
    "timeout",
    "timed out",
    "etimedout",
    "econnreset",
    "econnrefused",
)


class RateLimitError(Exception):
    """Upstream answered HTTP 429 (or an equivalent rate-limit signal)."""

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NetworkError(Exception):
    """Connection, DNS, timeout or 5xx failure talking to an upstream API."""


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, (RateLimitError, NetworkError)):
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status == 429 or error.status >= 500
    if isinstance(error, (aiohttp.ClientConnectionError, TimeoutError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


__all__ = ["NetworkError", "RateLimitError", "is_retryable_error"]
