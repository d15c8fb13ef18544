"""Upstream provider protocol and cached block-timestamp lookup."""

from __future__ import annotations

import logging
from typing import Protocol

from .backoff import BackoffClassifier, with_retry
from .cache import ExpiringCache

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_TIMESTAMP_TTL = 600.0


class UpstreamProvider(Protocol):
    """Head and timestamp queries the time model and range estimator need.

    Implementations raise ProviderError subclasses (or network errors) on
    failure; retries are applied by the caller through with_retry().
    """

    async def get_block_number(self) -> int:
        """Return the current head block number."""
        ...

    async def get_block_timestamp(self, block_number: int) -> int:
        """Return the timestamp (seconds) of ``block_number``."""
        ...


class BlockClock:
    """Retried, cached access to head block and block timestamps.

    Block timestamps never change once a block exists, so they are cached
    under ``block_ts:<n>`` for a long TTL. The head is never cached here.
    """

    def __init__(
        self,
        provider: UpstreamProvider,
        cache: ExpiringCache,
        classifier: BackoffClassifier,
        *,
        max_attempts: int = 20,
        block_timestamp_ttl: float = DEFAULT_BLOCK_TIMESTAMP_TTL,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._classifier = classifier
        self._max_attempts = max_attempts
        self._block_timestamp_ttl = block_timestamp_ttl

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    async def head(self) -> int:
        return await with_retry(
            self._provider.get_block_number,
            self._classifier,
            max_attempts=self._max_attempts,
            label="eth_blockNumber",
        )

    async def timestamp(self, block_number: int) -> int:
        key = f"block_ts:{block_number}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        ts = await with_retry(
            lambda: self._provider.get_block_timestamp(block_number),
            self._classifier,
            max_attempts=self._max_attempts,
            label=f"eth_getBlockByNumber({block_number})",
        )
        self._cache.set(key, ts, ttl=self._block_timestamp_ttl)
        return ts
