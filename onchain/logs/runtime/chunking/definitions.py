"""Chunking metadata definitions and policy structures.

This module defines the data structures used to describe block-range
chunking: the policy that sizes them, the transient
tasks the retriever works through, and the result it returns.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ...models import BlockRange, Record

FetchCapability = Callable[[BlockRange], Awaitable[list[Record]]]
"""Range-scoped fetch: returns the records in a block range or raises."""


@dataclass(frozen=True)
class ChunkPolicy:
    """Chunking policy for a retrieval.

    Attributes:
        starting_chunk_size: Initial chunk width in blocks
        min_chunk_size: Chunks this small are never split further
        concurrency_limit: Maximum upstream fetches in flight
        max_attempts: Retry budget per upstream call
        request_timeout: Per-call timeout in seconds (expiry is transient)
        max_suggestion_hops: Consecutive provider range corrections allowed per chunk
        deadline: Optional end-to-end limit in seconds for one retrieval
    """

    starting_chunk_size: int = 5000
    min_chunk_size: int = 200
    concurrency_limit: int = 4
    max_attempts: int = 20
    request_timeout: float = 30.0
    max_suggestion_hops: int = 8
    deadline: float | None = None

    def __post_init__(self) -> None:
        if self.starting_chunk_size <= 0 or self.min_chunk_size <= 0:
            raise ValueError("chunk sizes must be positive")
        if self.min_chunk_size > self.starting_chunk_size:
            raise ValueError("min_chunk_size cannot exceed starting_chunk_size")
        if self.concurrency_limit <= 0:
            raise ValueError("concurrency_limit must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_suggestion_hops < 0:
            raise ValueError("max_suggestion_hops must be >= 0")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be positive")


@dataclass(frozen=True)
class ChunkTask:
    """Unit of work for one chunk.

    Attributes:
        range: Declared block range of the chunk
        attempt: Provider range corrections already spent on this span; the
            remainders a correction leaves behind inherit the count
        depth: Number of splits between the root chunk and this one
    """

    range: BlockRange
    attempt: int = 0
    depth: int = 0


@dataclass
class RetrievalResult:
    """Result of a chunked retrieval.

    Attributes:
        records: Deduplicated records from all leaf chunks
        leaf_ranges: Block ranges actually fetched by successful leaf calls
        chunks_fetched: Number of successful leaf fetches
        splits: Number of chunk splits on oversized results
        corrections: Number of provider range corrections applied
        retries: Number of rate-limit/transient retries across all calls
        rate_limited_retries: Retries caused by rate limiting
        backoff_ms: Total time spent waiting between retries
        duplicates_dropped: Records removed by deduplication
        elapsed_ms: Wall time of the retrieval
    """

    records: list[Any]
    leaf_ranges: list[BlockRange] = field(default_factory=list)
    chunks_fetched: int = 0
    splits: int = 0
    corrections: int = 0
    retries: int = 0
    rate_limited_retries: int = 0
    backoff_ms: int = 0
    duplicates_dropped: int = 0
    elapsed_ms: float = 0.0

    @property
    def total_records(self) -> int:
        return len(self.records)
