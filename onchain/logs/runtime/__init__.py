"""Runtime components: cache, retry, time model, range estimation, chunking."""

from .backoff import BackoffClassifier, Classification, with_retry
from .cache import CacheStats, ExpiringCache
from .chunking import (
    BlockRange,
    ChunkedLogRetriever,
    ChunkPolicy,
    ChunkTask,
    FetchCapability,
    RetrievalResult,
    deduplicate_records,
)
from .range_estimator import BlockRangeEstimator, estimate_start_block
from .time_model import (
    ApproximateTimestampModel,
    apply_approximate_timestamps,
    approximate_timestamp,
)
from .upstream import BlockClock, UpstreamProvider

__all__ = [
    "BackoffClassifier",
    "Classification",
    "with_retry",
    "ExpiringCache",
    "CacheStats",
    "BlockRange",
    "ChunkPolicy",
    "ChunkTask",
    "FetchCapability",
    "RetrievalResult",
    "ChunkedLogRetriever",
    "deduplicate_records",
    "BlockRangeEstimator",
    "estimate_start_block",
    "ApproximateTimestampModel",
    "approximate_timestamp",
    "apply_approximate_timestamps",
    "BlockClock",
    "UpstreamProvider",
]
