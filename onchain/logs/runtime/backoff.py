"""Failure classification and retry-with-backoff.

Architecture:
    BackoffClassifier maps any exception raised by an upstream call to a
    FailureKind by type first and message signature second. with_retry()
    drives a single upstream call through that classification:
    - RATE_LIMITED / TRANSIENT: sleep and retry, bounded by max_attempts
    - SUGGESTED_RANGE / RESULT_TOO_LARGE: re-raised as typed exceptions so the
      chunked retriever can correct or split the range
    - FATAL: raised immediately as FatalProviderError

Design Decisions:
    - Suggested-range is checked before result-too-large because providers
      word both in similar messages
    - Backoff is exponential with a capped exponent and a hard cap; a
      provider-stated wait wins when it is longer
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import aiohttp

from ..core.enums import FailureKind
from ..core.exceptions import (
    FatalProviderError,
    ProviderError,
    RateLimitError,
    ResultTooLargeError,
    RetryExhaustedError,
    SuggestedRangeError,
    TransientProviderError,
)
from ..models import BlockRange

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_MS = 200
DEFAULT_CAP_MS = 10_000
DEFAULT_MAX_EXPONENT = 6
DEFAULT_MAX_ATTEMPTS = 20

_SUGGESTED_RANGE_RE = re.compile(r"retry with the range\s+(\d+)\s*-\s*(\d+)", re.IGNORECASE)
_RETRY_AFTER_MS_RE = re.compile(r"try again in\s+(\d+)\s*ms", re.IGNORECASE)
_RETRY_AFTER_S_RE = re.compile(r"retry after\s+(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)

_TOO_LARGE_PATTERNS = (
    "exceeds max results",
    "too many results",
    "response size exceed",
    "query returned more than",
    "log response size exceeded",
)
_RATE_LIMIT_PATTERNS = (
    "status: 429",
    "too many requests",
    "rate limit",
    '"code":-32005',
    '"code": -32005',
)
_RATE_LIMIT_CODES = frozenset({-32005, -32016})
_TRANSIENT_STATUSES = frozenset({500, 502, 503, 504, 520, 522, 524})
_TRANSIENT_PATTERNS = (
    "fetch failed",
    "socket hang up",
    "econnreset",
    "connection reset",
    "timed out",
)


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one failure."""

    kind: FailureKind
    retry_after_ms: int | None = None
    suggested_range: BlockRange | None = None


def parse_suggested_range(message: str) -> BlockRange | None:
    """Extract ``retry with the range <a>-<b>`` from a provider message."""
    match = _SUGGESTED_RANGE_RE.search(message)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if start > end:
        return None
    return BlockRange(start, end)


def parse_retry_after_ms(message: str) -> int | None:
    """Extract a provider-stated wait from a message, in milliseconds."""
    match = _RETRY_AFTER_MS_RE.search(message)
    if match:
        return int(match.group(1))
    match = _RETRY_AFTER_S_RE.search(message)
    if match:
        return int(float(match.group(1)) * 1000)
    return None


class BackoffClassifier:
    """Classifies upstream failures and computes retry waits."""

    def __init__(
        self,
        *,
        base_ms: int = DEFAULT_BASE_MS,
        cap_ms: int = DEFAULT_CAP_MS,
        max_exponent: int = DEFAULT_MAX_EXPONENT,
    ) -> None:
        if base_ms <= 0 or cap_ms <= 0:
            raise ValueError("base_ms and cap_ms must be positive")
        if max_exponent < 0:
            raise ValueError("max_exponent must be >= 0")
        self.base_ms = base_ms
        self.cap_ms = cap_ms
        self.max_exponent = max_exponent

    def classify(self, error: BaseException) -> Classification:
        # Typed exceptions raised by our own provider layer
        if isinstance(error, SuggestedRangeError):
            return Classification(FailureKind.SUGGESTED_RANGE, suggested_range=error.suggested)
        if isinstance(error, ResultTooLargeError):
            return Classification(FailureKind.RESULT_TOO_LARGE)
        if isinstance(error, RateLimitError):
            retry_after = error.retry_after_ms
            if retry_after is None:
                retry_after = parse_retry_after_ms(str(error))
            return Classification(FailureKind.RATE_LIMITED, retry_after_ms=retry_after)
        if isinstance(error, TransientProviderError):
            return Classification(FailureKind.TRANSIENT)
        if isinstance(error, FatalProviderError):
            return Classification(FailureKind.FATAL)

        message = str(error)
        lowered = message.lower()

        suggested = parse_suggested_range(message)
        if suggested is not None:
            return Classification(FailureKind.SUGGESTED_RANGE, suggested_range=suggested)

        if any(p in lowered for p in _TOO_LARGE_PATTERNS):
            return Classification(FailureKind.RESULT_TOO_LARGE)

        status = getattr(error, "status_code", None)
        if status is None and isinstance(error, aiohttp.ClientResponseError):
            status = error.status
        code = getattr(error, "code", None)

        if (
            status == 429
            or (isinstance(code, int) and code in _RATE_LIMIT_CODES)
            or any(p in lowered for p in _RATE_LIMIT_PATTERNS)
        ):
            return Classification(
                FailureKind.RATE_LIMITED, retry_after_ms=parse_retry_after_ms(message)
            )

        if status in _TRANSIENT_STATUSES:
            return Classification(FailureKind.TRANSIENT)
        if isinstance(error, (TimeoutError, asyncio.TimeoutError, aiohttp.ClientConnectionError)):
            return Classification(FailureKind.TRANSIENT)
        if isinstance(error, ConnectionError):
            return Classification(FailureKind.TRANSIENT)
        if any(f"status: {s}" in lowered for s in _TRANSIENT_STATUSES):
            return Classification(FailureKind.TRANSIENT)
        if any(p in lowered for p in _TRANSIENT_PATTERNS):
            return Classification(FailureKind.TRANSIENT)

        return Classification(FailureKind.FATAL)

    def backoff_ms(self, attempt: int) -> int:
        """Exponential backoff for a zero-based attempt, capped at ``cap_ms``."""
        exponent = min(self.max_exponent, max(0, attempt))
        return min(self.cap_ms, self.base_ms * 2**exponent)

    def wait_ms(self, classification: Classification, attempt: int) -> int:
        return max(self.backoff_ms(attempt), classification.retry_after_ms or 0)


def escalate(error: BaseException, classification: Classification) -> BaseException:
    """Return the exception the retry loop raises for a non-retryable failure.

    Upstream failures become FatalProviderError. Anything that did not come
    from the provider or the network (a bug in a fetch capability, say) is
    returned unchanged so it is not mistaken for an unavailable upstream.
    """
    if classification.kind is FailureKind.SUGGESTED_RANGE:
        if isinstance(error, SuggestedRangeError):
            return error
        if classification.suggested_range is not None:
            return SuggestedRangeError(str(error), classification.suggested_range)
        # A suggestion without a range cannot be followed; treat it as fatal below
    if classification.kind is FailureKind.RESULT_TOO_LARGE:
        if isinstance(error, ResultTooLargeError):
            return error
        return ResultTooLargeError(str(error))
    if isinstance(error, FatalProviderError):
        return error
    if not isinstance(error, (ProviderError, aiohttp.ClientError, OSError)):
        return error
    return FatalProviderError(
        str(error) or type(error).__name__,
        status_code=getattr(error, "status_code", None),
        code=getattr(error, "code", None),
    )


async def with_retry(
    call: Callable[[], Awaitable[T]],
    classifier: BackoffClassifier,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[Classification, int, int], None] | None = None,
    label: str = "rpc",
) -> T:
    """Run ``call`` until it succeeds or fails non-retryably.

    Args:
        call: Zero-argument coroutine factory issuing one upstream call
        classifier: Classifier used for every failure
        max_attempts: Maximum number of calls before giving up
        sleep: Awaitable sleep, injectable for tests
        on_retry: Optional hook ``(classification, attempt, wait_ms)``
        label: Name used in log messages

    Returns:
        The result of the first successful call

    Raises:
        SuggestedRangeError: Provider proposed a corrected range
        ResultTooLargeError: Provider refused the range as too large
        FatalProviderError: Non-retryable upstream failure or retry budget exhausted
        Exception: Errors unrelated to the upstream propagate unchanged
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    attempt = 0
    while True:
        try:
            return await call()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            classification = classifier.classify(e)
            if not classification.kind.retryable:
                escalated = escalate(e, classification)
                if escalated is e:
                    raise
                raise escalated from e

            if attempt + 1 >= max_attempts:
                raise RetryExhaustedError(
                    f"{label} failed after {max_attempts} attempts: {e}",
                    attempts=max_attempts,
                    last_error=e,
                ) from e
            wait = classifier.wait_ms(classification, attempt)
            logger.warning(
                f"{label} failed ({classification.kind.value}, attempt "
                f"{attempt + 1}/{max_attempts}), retrying in {wait}ms: {e}"
            )
            if on_retry is not None:
                on_retry(classification, attempt, wait)
            await sleep(wait / 1000.0)
            attempt += 1
