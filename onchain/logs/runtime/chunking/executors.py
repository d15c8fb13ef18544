"""Chunk execution logic for fetching and aggregating chunks.

This module provides ChunkedLogRetriever, which retrieves every record in a
block range from a capped, rate-limited provider.

Architecture:
    Chunks are ChunkTasks on an asyncio.Queue served by a fixed pool of
    worker tasks; each worker is one permit, so at most ``concurrency_limit``
    upstream calls are in flight no matter how far chunks are split. Per
    chunk, a worker:
    - fetches through with_retry() (rate limits and transient failures are
      retried with backoff, each call under its own timeout)
    - on a provider-suggested range, refetches immediately against the
      corrected span and enqueues whatever part of the chunk the correction
      left out
    - on an oversized result, enqueues both halves of the chunk, escalating
      to fatal once the chunk is at the floor size
    - on success, records the leaf range and its records
    A fatal failure in any worker cancels the others and discards all
    collected records.

Invariants:
    Every block of the requested range is claimed by exactly one successful
    leaf fetch. Splits and corrections only ever replace a range with
    disjoint sub-ranges whose union is that range.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from ...core.enums import FailureKind
from ...core.exceptions import (
    FatalProviderError,
    ResultTooLargeError,
    RetrievalTimeoutError,
    SuggestedRangeError,
    TransientProviderError,
)
from ..backoff import BackoffClassifier, Classification, with_retry
from .definitions import BlockRange, ChunkPolicy, ChunkTask, FetchCapability, RetrievalResult
from .planners import ChunkPlanner
from .telemetry import (
    log_chunk_completed,
    log_chunk_error,
    log_chunk_range_corrected,
    log_chunk_retry,
    log_chunk_split,
    log_retrieval_complete,
)

logger = logging.getLogger(__name__)


def _record_identity(record: Any) -> Hashable:
    return record.identity


def deduplicate_records(
    records: Iterable[Any],
    *,
    key: Callable[[Any], Hashable] = _record_identity,
) -> list[Any]:
    """Keep the first occurrence of each record identity.

    Order of first occurrences is preserved, so applying this twice is the
    same as applying it once.

    Args:
        records: Records in arrival order
        key: Identity function (default: ``record.identity``)

    Returns:
        Records with later duplicates removed
    """
    seen: set[Hashable] = set()
    unique: list[Any] = []
    for record in records:
        identity = key(record)
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(record)
    return unique


@dataclass
class _RetrievalState:
    records: list[Any] = field(default_factory=list)
    leaf_ranges: list[BlockRange] = field(default_factory=list)
    splits: int = 0
    corrections: int = 0
    retries: int = 0
    rate_limited_retries: int = 0
    backoff_ms: int = 0

    def count_retry(self, classification: Classification, attempt: int, wait_ms: int) -> None:
        self.retries += 1
        self.backoff_ms += wait_ms
        if classification.kind is FailureKind.RATE_LIMITED:
            self.rate_limited_retries += 1
        log_chunk_retry(kind=classification.kind.value, attempt=attempt, wait_ms=wait_ms)


class ChunkedLogRetriever:
    """Retrieves all records in a block range by adaptive chunking.

    Example:
        >>> retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=2000))
        >>> records = await retriever.retrieve_all(BlockRange(100, 90_000), fetch)
    """

    def __init__(
        self,
        policy: ChunkPolicy | None = None,
        classifier: BackoffClassifier | None = None,
        *,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        """Initialize the retriever.

        Args:
            policy: Chunk sizing, concurrency, retry and timeout settings
            classifier: Failure classifier and backoff schedule
            sleep: Awaitable sleep used for backoff waits (injectable for tests)
        """
        self._policy = policy if policy is not None else ChunkPolicy()
        self._classifier = classifier if classifier is not None else BackoffClassifier()
        self._planner = ChunkPlanner(self._policy)
        self._sleep = sleep

    @property
    def policy(self) -> ChunkPolicy:
        return self._policy

    async def retrieve_all(self, block_range: BlockRange, fetch: FetchCapability) -> list[Any]:
        """Return the deduplicated records of ``block_range``, in no particular order.

        Raises:
            FatalProviderError: A chunk failed non-retryably, the retry budget
                or the split floor was exhausted, or the deadline expired
        """
        result = await self.retrieve(block_range, fetch)
        return result.records

    async def retrieve(self, block_range: BlockRange, fetch: FetchCapability) -> RetrievalResult:
        """Retrieve ``block_range`` and return records with retrieval statistics."""
        started = perf_counter()
        state = _RetrievalState()
        queue: asyncio.Queue[ChunkTask] = asyncio.Queue()
        for task in self._planner.plan(block_range):
            queue.put_nowait(task)

        workers = [
            asyncio.create_task(self._worker(queue, fetch, state))
            for _ in range(self._policy.concurrency_limit)
        ]
        drained = asyncio.create_task(queue.join())
        try:
            done, _ = await asyncio.wait(
                [drained, *workers],
                timeout=self._policy.deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                raise RetrievalTimeoutError(
                    f"Retrieval of blocks {block_range} exceeded {self._policy.deadline}s deadline"
                )
            for worker in workers:
                if worker.done() and not worker.cancelled() and worker.exception() is not None:
                    raise worker.exception()  # type: ignore[misc]
        finally:
            # Workers never exit on their own; stop them whether we succeeded or not
            for pending in (drained, *workers):
                pending.cancel()
            await asyncio.gather(drained, *workers, return_exceptions=True)

        records = deduplicate_records(state.records)
        result = RetrievalResult(
            records=records,
            leaf_ranges=sorted(state.leaf_ranges),
            chunks_fetched=len(state.leaf_ranges),
            splits=state.splits,
            corrections=state.corrections,
            retries=state.retries,
            rate_limited_retries=state.rate_limited_retries,
            backoff_ms=state.backoff_ms,
            duplicates_dropped=len(state.records) - len(records),
            elapsed_ms=(perf_counter() - started) * 1000.0,
        )
        log_retrieval_complete(block_range=block_range, result=result)
        return result

    async def _worker(
        self,
        queue: asyncio.Queue[ChunkTask],
        fetch: FetchCapability,
        state: _RetrievalState,
    ) -> None:
        while True:
            task = await queue.get()
            try:
                await self._run_task(task, queue, fetch, state)
            except Exception as e:
                log_chunk_error(
                    block_range=task.range,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                raise
            # Children are enqueued before this, so join() cannot fire early
            queue.task_done()

    async def _run_task(
        self,
        task: ChunkTask,
        queue: asyncio.Queue[ChunkTask],
        fetch: FetchCapability,
        state: _RetrievalState,
    ) -> None:
        current = task.range
        hops = task.attempt
        while True:
            chunk_start = perf_counter()
            try:
                records = await with_retry(
                    lambda: self._fetch_once(fetch, current),
                    self._classifier,
                    max_attempts=self._policy.max_attempts,
                    sleep=self._sleep,
                    on_retry=state.count_retry,
                    label=f"chunk {current}",
                )
            except SuggestedRangeError as e:
                hops += 1
                if hops > self._policy.max_suggestion_hops:
                    raise FatalProviderError(
                        f"Provider kept correcting chunk {task.range} "
                        f"({hops - 1} corrections): {e}"
                    ) from e
                corrected = self._apply_correction(current, e.suggested, task, queue, hops)
                state.corrections += 1
                log_chunk_range_corrected(declared=current, corrected=corrected)
                current = corrected
                continue
            except ResultTooLargeError as e:
                if current.size <= self._policy.min_chunk_size:
                    raise FatalProviderError(
                        f"Chunk {current} still exceeds provider result cap at "
                        f"minimum chunk size {self._policy.min_chunk_size}: {e}"
                    ) from e
                left, right = current.split()
                queue.put_nowait(ChunkTask(range=left, depth=task.depth + 1))
                queue.put_nowait(ChunkTask(range=right, depth=task.depth + 1))
                state.splits += 1
                log_chunk_split(block_range=current, left=left, right=right, depth=task.depth)
                return

            state.records.extend(records)
            state.leaf_ranges.append(current)
            log_chunk_completed(
                block_range=current,
                rows=len(records),
                latency_ms=(perf_counter() - chunk_start) * 1000.0,
            )
            return

    def _apply_correction(
        self,
        current: BlockRange,
        suggested: BlockRange,
        task: ChunkTask,
        queue: asyncio.Queue[ChunkTask],
        hops: int,
    ) -> BlockRange:
        """Clip a suggested range to the chunk and enqueue the uncovered remainder.

        Remainders carry the corrections spent so far, so a provider cannot
        keep a span alive by bouncing it between corrected pieces.
        """
        start = max(current.start, suggested.start)
        end = min(current.end, suggested.end)
        if start > end:
            raise FatalProviderError(
                f"Provider suggested range {suggested} outside requested chunk {current}"
            )
        corrected = BlockRange(start, end)
        if current.start < corrected.start:
            queue.put_nowait(
                ChunkTask(
                    range=BlockRange(current.start, corrected.start - 1),
                    attempt=hops,
                    depth=task.depth,
                )
            )
        if corrected.end < current.end:
            queue.put_nowait(
                ChunkTask(
                    range=BlockRange(corrected.end + 1, current.end),
                    attempt=hops,
                    depth=task.depth,
                )
            )
        return corrected

    async def _fetch_once(self, fetch: FetchCapability, block_range: BlockRange) -> list[Any]:
        try:
            records = await asyncio.wait_for(fetch(block_range), timeout=self._policy.request_timeout)
        except TimeoutError as e:
            raise TransientProviderError(
                f"Fetch of blocks {block_range} timed out after {self._policy.request_timeout}s"
            ) from e
        if records is None:
            return []
        return list(records)
