"""LogAPI facade for windowed event retrieval.

The LogAPI wires the shared cache, classifier, upstream provider, time
model, range estimator and chunked retriever together and exposes the two
entry points the dashboard needs, plus a convenience that runs the whole
"records of the last N hours" flow.

Architecture:
    Facade over the runtime components, in the same shape as a data API
    over a router:
    - Component injection for testing with fake providers
    - from_settings() builds the full stack from RetrievalSettings
    - Context manager starts the cache sweep and closes the provider

See Also:
    - BlockRangeEstimator: estimate_range()
    - ChunkedLogRetriever: retrieve_all()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..config import RetrievalSettings
from ..models import BlockRange, Record, TimeModel
from ..providers.jsonrpc import JsonRpcProvider
from ..runtime.backoff import BackoffClassifier
from ..runtime.cache import ExpiringCache
from ..runtime.chunking import ChunkedLogRetriever, ChunkPolicy, FetchCapability, RetrievalResult
from ..runtime.range_estimator import BlockRangeEstimator
from ..runtime.time_model import ApproximateTimestampModel
from ..runtime.upstream import BlockClock, UpstreamProvider
from .time_window import DEFAULT_MAX_WINDOW_SECONDS, parse_window_seconds

logger = logging.getLogger(__name__)


def sort_records(records: Iterable[Record]) -> list[Record]:
    """Newest first: descending block number, then descending sequence index."""
    return sorted(records, key=lambda r: (r.block_number, r.sequence_index), reverse=True)


class LogAPI:
    """High-level facade for windowed on-chain event retrieval.

    Example:
        >>> async with LogAPI.from_settings(RetrievalSettings.from_env()) as api:
        ...     block_range = await api.estimate_range(3600)
        ...     records = await api.retrieve_window("24h", address="0xfeec...")
    """

    def __init__(
        self,
        provider: UpstreamProvider,
        *,
        cache: ExpiringCache | None = None,
        classifier: BackoffClassifier | None = None,
        policy: ChunkPolicy | None = None,
        max_scan_blocks: int = 200_000,
        sample_offset: int = 2000,
        time_model_ttl: float = 30.0,
        block_timestamp_ttl: float = 600.0,
        max_window_seconds: int = DEFAULT_MAX_WINDOW_SECONDS,
        owns_provider: bool = False,
    ) -> None:
        """Initialize the facade.

        Args:
            provider: Upstream provider (head, timestamps and, for
                retrieve_window() without a fetch, ``log_fetcher``)
            cache: Shared expiring cache (defaults to a new instance)
            classifier: Failure classifier (defaults to standard backoff)
            policy: Chunking policy for the retriever
            max_scan_blocks: Hard cap on how far back a window may reach
            sample_offset: Distance of the sample block behind head
            time_model_ttl: TTL of the cached time model (seconds)
            block_timestamp_ttl: TTL of cached block timestamps (seconds)
            max_window_seconds: Cap applied when parsing window strings
            owns_provider: Close the provider when the facade closes
        """
        self._provider = provider
        self._cache = cache if cache is not None else ExpiringCache()
        self._classifier = classifier if classifier is not None else BackoffClassifier()
        self._policy = policy if policy is not None else ChunkPolicy()
        self._max_window_seconds = max_window_seconds
        self._owns_provider = owns_provider

        self._clock = BlockClock(
            provider,
            self._cache,
            self._classifier,
            max_attempts=self._policy.max_attempts,
            block_timestamp_ttl=block_timestamp_ttl,
        )
        self._time_model = ApproximateTimestampModel(
            self._clock, sample_offset=sample_offset, ttl=time_model_ttl
        )
        self._estimator = BlockRangeEstimator(
            self._clock, max_scan_blocks=max_scan_blocks, sample_offset=sample_offset
        )
        self._retriever = ChunkedLogRetriever(self._policy, self._classifier)

    @classmethod
    def from_settings(cls, settings: RetrievalSettings) -> LogAPI:
        """Build the full stack, including a JSON-RPC provider, from settings."""
        provider = JsonRpcProvider(settings.rpc_url, timeout=settings.request_timeout)
        return cls(
            provider,
            cache=ExpiringCache(
                max_entries=settings.cache_max_entries,
                sweep_interval=settings.cache_sweep_interval,
            ),
            classifier=BackoffClassifier(
                base_ms=settings.backoff_base_ms,
                cap_ms=settings.backoff_cap_ms,
                max_exponent=settings.backoff_max_exponent,
            ),
            policy=settings.chunk_policy(),
            max_scan_blocks=settings.max_scan_blocks,
            sample_offset=settings.sample_offset,
            time_model_ttl=settings.time_model_ttl,
            block_timestamp_ttl=settings.block_timestamp_ttl,
            max_window_seconds=settings.max_window_seconds,
            owns_provider=True,
        )

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    @property
    def retriever(self) -> ChunkedLogRetriever:
        return self._retriever

    async def estimate_range(self, window_seconds: float) -> BlockRange:
        """Block range covering the last ``window_seconds``."""
        return await self._estimator.estimate_range(window_seconds)

    async def retrieve_all(self, block_range: BlockRange, fetch: FetchCapability) -> list[Any]:
        """All records of ``block_range``, deduplicated, in no particular order."""
        return await self._retriever.retrieve_all(block_range, fetch)

    async def retrieve(self, block_range: BlockRange, fetch: FetchCapability) -> RetrievalResult:
        """Like retrieve_all() but with retrieval statistics."""
        return await self._retriever.retrieve(block_range, fetch)

    async def current_time_model(self) -> TimeModel:
        return await self._time_model.current_model()

    async def retrieve_window(
        self,
        window: str | int | None = None,
        fetch: FetchCapability | None = None,
        *,
        address: str | list[str] | None = None,
        topics: list[Any] | None = None,
        with_timestamps: bool = True,
    ) -> list[Record]:
        """Records of the last ``window`` (``"24h"``, ``"7d"`` or seconds), newest first.

        Args:
            window: Window string or a number of seconds (default 24h)
            fetch: Fetch capability; built from the provider's
                ``log_fetcher(address=, topics=)`` when omitted
            address: Log filter address when ``fetch`` is omitted
            topics: Log filter topics when ``fetch`` is omitted
            with_timestamps: Fill approximate timestamps from the time model

        Raises:
            ValueError: If the window is malformed
            FatalProviderError: If the upstream is unavailable
        """
        if isinstance(window, bool):
            raise ValueError("window must be a window string or a number of seconds")
        if isinstance(window, int):
            if window <= 0:
                raise ValueError("window must be positive")
            window_seconds = min(window, self._max_window_seconds)
        else:
            window_seconds = parse_window_seconds(window, max_seconds=self._max_window_seconds)

        if fetch is None:
            log_fetcher = getattr(self._provider, "log_fetcher", None)
            if log_fetcher is None:
                raise ValueError("fetch is required when the provider has no log_fetcher")
            fetch = log_fetcher(address=address, topics=topics)

        block_range = await self.estimate_range(window_seconds)
        records = await self.retrieve_all(block_range, fetch)
        if with_timestamps:
            records = await self._time_model.apply(records)
        return sort_records(records)

    async def close(self) -> None:
        """Stop the cache sweep and close an owned provider."""
        await self._cache.stop()
        if self._owns_provider:
            close = getattr(self._provider, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> LogAPI:
        self._cache.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
