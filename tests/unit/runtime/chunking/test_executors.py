"""Unit tests for chunked log retrieval."""

from __future__ import annotations

import asyncio
import logging

import pytest

from onchain.logs.core import (
    FatalProviderError,
    ProviderError,
    RateLimitError,
    ResultTooLargeError,
    RetrievalTimeoutError,
    RetryExhaustedError,
    TransientProviderError,
)
from onchain.logs.models import BlockRange, Record
from onchain.logs.runtime.chunking import (
    ChunkedLogRetriever,
    ChunkPolicy,
    deduplicate_records,
)


def records_for(block_range: BlockRange) -> list[Record]:
    """One record per block, identified by block number."""
    return [
        Record(transaction_id=f"0x{b:064x}", sequence_index=0, block_number=b)
        for b in range(block_range.start, block_range.end + 1)
    ]


def assert_exact_cover(ranges: list[BlockRange], expected: BlockRange) -> None:
    """Every block of ``expected`` is claimed by exactly one range."""
    claimed: list[int] = []
    for r in ranges:
        claimed.extend(range(r.start, r.end + 1))
    assert sorted(claimed) == list(range(expected.start, expected.end + 1))


class RecordingSleep:
    """Awaitable sleep that records waits instead of sleeping."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class TestChunkedLogRetrieverCoverage:
    """Test that retrieval covers the range exactly."""

    @pytest.mark.asyncio
    async def test_retrieve_all_plain_range(self):
        """Test retrieval when every chunk succeeds first time."""
        calls: list[BlockRange] = []

        async def fetch(block_range: BlockRange) -> list[Record]:
            calls.append(block_range)
            return records_for(block_range)

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=1000, min_chunk_size=100))
        target = BlockRange(0, 12_344)

        records = await retriever.retrieve_all(target, fetch)

        assert len(calls) == 13
        assert_exact_cover(calls, target)
        assert len(records) == target.size
        assert {r.block_number for r in records} == set(range(0, 12_345))

    @pytest.mark.asyncio
    async def test_retrieve_single_block_range(self):
        """Test that a one-block range is fetched with one call."""
        calls: list[BlockRange] = []

        async def fetch(block_range: BlockRange) -> list[Record]:
            calls.append(block_range)
            return records_for(block_range)

        result = await ChunkedLogRetriever().retrieve(BlockRange(42, 42), fetch)

        assert calls == [BlockRange(42, 42)]
        assert result.chunks_fetched == 1
        assert result.total_records == 1

    @pytest.mark.asyncio
    async def test_empty_chunks_are_fine(self):
        """Test that chunks without records still count as covered."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            return []

        result = await ChunkedLogRetriever(
            ChunkPolicy(starting_chunk_size=500, min_chunk_size=100)
        ).retrieve(BlockRange(0, 1999), fetch)

        assert result.records == []
        assert result.chunks_fetched == 4
        assert_exact_cover(result.leaf_ranges, BlockRange(0, 1999))


class TestChunkedLogRetrieverSplitting:
    """Test recursive narrowing on oversized results."""

    @pytest.mark.asyncio
    async def test_splits_until_results_fit(self):
        """Test that oversized chunks are split and leaves cover the range once."""
        successful: list[BlockRange] = []

        async def fetch(block_range: BlockRange) -> list[Record]:
            if block_range.size > 700:
                raise ProviderError("query exceeds max results 10000, retry later", code=-32005)
            successful.append(block_range)
            return records_for(block_range)

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=5000, min_chunk_size=200))
        target = BlockRange(1000, 10_999)

        result = await retriever.retrieve(target, fetch)

        assert result.splits > 0
        assert all(r.size <= 700 for r in successful)
        assert_exact_cover(successful, target)
        assert_exact_cover(result.leaf_ranges, target)
        assert len(result.records) == target.size

    @pytest.mark.asyncio
    async def test_split_terminates_at_floor(self):
        """Test that a provider that is always too large ends in a fatal error."""
        calls = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal calls
            calls += 1
            raise ResultTooLargeError("too many results")

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=1000, min_chunk_size=200))

        with pytest.raises(FatalProviderError) as exc_info:
            await retriever.retrieve_all(BlockRange(0, 999), fetch)

        assert "minimum chunk size" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ResultTooLargeError)
        # 1000 -> 500 -> 250 -> 125 per branch; the first floor hit aborts
        assert calls < 16

    @pytest.mark.asyncio
    async def test_split_telemetry_carries_depth(self, caplog):
        """Test that chunk_split records report how deep the split chunk was."""
        caplog.set_level(logging.INFO, logger="onchain.logs.runtime.chunking.telemetry")

        async def fetch(block_range: BlockRange) -> list[Record]:
            if block_range.size > 250:
                raise ResultTooLargeError("too many results")
            return records_for(block_range)

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=1000, min_chunk_size=100))

        result = await retriever.retrieve(BlockRange(0, 999), fetch)

        splits = [r for r in caplog.records if r.getMessage() == "chunk_split"]
        assert result.splits == 3
        assert sorted(r.depth for r in splits) == [0, 1, 1]
        assert {(r.from_block, r.to_block) for r in splits if r.depth == 0} == {(0, 999)}


class TestChunkedLogRetrieverSuggestedRange:
    """Test provider-suggested range corrections."""

    @pytest.mark.asyncio
    async def test_corrected_range_is_used_and_remainder_covered(self):
        """Test that corrections are honoured and no blocks are lost."""
        successful: list[BlockRange] = []

        async def fetch(block_range: BlockRange) -> list[Record]:
            if block_range.size > 50:
                end = block_range.start + 49
                # Worded like a size error on purpose: the suggestion must win
                raise ProviderError(
                    "Log response size exceeded. You can make eth_getLogs requests with "
                    f"up to a 2K block range, retry with the range {block_range.start}-{end}"
                )
            successful.append(block_range)
            return records_for(block_range)

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=200, min_chunk_size=10))
        target = BlockRange(0, 399)

        result = await retriever.retrieve(target, fetch)

        assert result.corrections > 0
        assert result.splits == 0
        assert_exact_cover(successful, target)
        assert len(result.records) == target.size

    @pytest.mark.asyncio
    async def test_suggestion_outside_chunk_is_fatal(self):
        """Test that a suggestion disjoint from the chunk cannot be honoured."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            raise ProviderError("retry with the range 900000-900010")

        with pytest.raises(FatalProviderError):
            await ChunkedLogRetriever().retrieve_all(BlockRange(0, 99), fetch)

    @pytest.mark.asyncio
    async def test_endless_corrections_are_bounded(self):
        """Test that a provider repeating the same suggestion cannot loop forever."""
        calls = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal calls
            calls += 1
            raise ProviderError(f"retry with the range {block_range.start}-{block_range.end}")

        retriever = ChunkedLogRetriever(ChunkPolicy(max_suggestion_hops=3))

        with pytest.raises(FatalProviderError):
            await retriever.retrieve_all(BlockRange(0, 99), fetch)

        assert calls == 4

    @pytest.mark.asyncio
    async def test_remainders_inherit_correction_budget(self):
        """Test that a provider trimming each remainder again exhausts the chunk's budget."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            if block_range.size > 10:
                raise ProviderError(
                    f"retry with the range {block_range.start}-{block_range.start + 9}"
                )
            return records_for(block_range)

        retriever = ChunkedLogRetriever(
            ChunkPolicy(starting_chunk_size=100, min_chunk_size=10, max_suggestion_hops=3)
        )

        with pytest.raises(FatalProviderError) as exc_info:
            await retriever.retrieve_all(BlockRange(0, 99), fetch)

        assert "kept correcting" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_remainder_chain_within_budget_covers_chunk(self):
        """Test that the same trimming provider succeeds when the budget allows it."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            if block_range.size > 10:
                raise ProviderError(
                    f"retry with the range {block_range.start}-{block_range.start + 9}"
                )
            return records_for(block_range)

        retriever = ChunkedLogRetriever(
            ChunkPolicy(starting_chunk_size=100, min_chunk_size=10, max_suggestion_hops=9)
        )

        result = await retriever.retrieve(BlockRange(0, 99), fetch)

        assert result.corrections == 9
        assert_exact_cover(result.leaf_ranges, BlockRange(0, 99))


class TestChunkedLogRetrieverRetries:
    """Test retry-with-backoff inside chunk fetches."""

    @pytest.mark.asyncio
    async def test_rate_limited_chunks_are_retried(self):
        """Test that rate limits are absorbed and backoff waits are taken."""
        failures: dict[BlockRange, int] = {}

        async def fetch(block_range: BlockRange) -> list[Record]:
            seen = failures.get(block_range, 0)
            if seen < 2:
                failures[block_range] = seen + 1
                raise RateLimitError("HTTP request failed. Status: 429")
            return records_for(block_range)

        sleep = RecordingSleep()
        retriever = ChunkedLogRetriever(
            ChunkPolicy(starting_chunk_size=100, min_chunk_size=10), sleep=sleep
        )

        result = await retriever.retrieve(BlockRange(0, 299), fetch)

        assert len(result.records) == 300
        assert result.retries == 6
        assert result.rate_limited_retries == 6
        assert result.backoff_ms == 1800
        assert sorted(sleep.waits) == [0.2, 0.2, 0.2, 0.4, 0.4, 0.4]

    @pytest.mark.asyncio
    async def test_retry_statistics_by_kind(self):
        """Test that transient retries add wait time but not rate-limit counts."""
        calls = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise TransientProviderError("HTTP request failed. Status: 503", status_code=503)
            return records_for(block_range)

        result = await ChunkedLogRetriever(sleep=RecordingSleep()).retrieve(BlockRange(0, 9), fetch)

        assert result.retries == 1
        assert result.rate_limited_retries == 0
        assert result.backoff_ms == 200

    @pytest.mark.asyncio
    async def test_provider_stated_wait_is_honoured(self):
        """Test that a longer provider-stated wait beats the computed backoff."""
        calls = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ProviderError("rate limited, try again in 1500ms", code=-32005)
            return records_for(block_range)

        sleep = RecordingSleep()
        retriever = ChunkedLogRetriever(sleep=sleep)

        await retriever.retrieve_all(BlockRange(0, 9), fetch)

        assert sleep.waits == [1.5]

    @pytest.mark.asyncio
    async def test_retry_budget_exhaustion_is_fatal(self):
        """Test that a chunk that never recovers surfaces as fatal."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            raise TransientProviderError("HTTP request failed. Status: 503", status_code=503)

        retriever = ChunkedLogRetriever(ChunkPolicy(max_attempts=3), sleep=RecordingSleep())

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retriever.retrieve_all(BlockRange(0, 9), fetch)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value, FatalProviderError)

    @pytest.mark.asyncio
    async def test_per_call_timeout_is_transient(self):
        """Test that a hung call times out and is retried."""
        calls = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return records_for(block_range)

        retriever = ChunkedLogRetriever(
            ChunkPolicy(request_timeout=0.01), sleep=RecordingSleep()
        )

        records = await retriever.retrieve_all(BlockRange(0, 4), fetch)

        assert calls == 2
        assert len(records) == 5


class TestChunkedLogRetrieverFailures:
    """Test all-or-nothing failure semantics."""

    @pytest.mark.asyncio
    async def test_fatal_chunk_aborts_retrieval(self):
        """Test that one fatal chunk fails the call and cancels siblings."""
        cancelled = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal cancelled
            if block_range.start == 0:
                raise ProviderError("RPC error -32602: invalid argument", code=-32602)
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled += 1
                raise
            return records_for(block_range)

        retriever = ChunkedLogRetriever(ChunkPolicy(starting_chunk_size=100, min_chunk_size=10))

        with pytest.raises(FatalProviderError) as exc_info:
            await retriever.retrieve_all(BlockRange(0, 999), fetch)

        assert "invalid argument" in str(exc_info.value)
        assert cancelled == 3

    @pytest.mark.asyncio
    async def test_non_provider_errors_propagate_unchanged(self):
        """Test that a bug in the fetch capability is not disguised as an outage."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            raise KeyError("transactionHash")

        with pytest.raises(KeyError):
            await ChunkedLogRetriever().retrieve_all(BlockRange(0, 9), fetch)

    @pytest.mark.asyncio
    async def test_deadline_expiry_is_fatal(self):
        """Test that the end-to-end deadline aborts a slow retrieval."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            await asyncio.sleep(5)
            return []

        retriever = ChunkedLogRetriever(ChunkPolicy(deadline=0.05))

        with pytest.raises(RetrievalTimeoutError):
            await retriever.retrieve_all(BlockRange(0, 99), fetch)


class TestChunkedLogRetrieverConcurrency:
    """Test the bounded-concurrency guarantee."""

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_limit(self):
        """Test that dozens of chunks and splits never exceed the permit count."""
        in_flight = 0
        peak = 0

        async def fetch(block_range: BlockRange) -> list[Record]:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.001)
                if block_range.size > 300 and block_range.start % 2 == 0:
                    raise ResultTooLargeError("exceeds max results")
                return records_for(block_range)
            finally:
                in_flight -= 1

        policy = ChunkPolicy(starting_chunk_size=500, min_chunk_size=50, concurrency_limit=4)
        target = BlockRange(0, 24_999)

        result = await ChunkedLogRetriever(policy).retrieve(target, fetch)

        assert result.chunks_fetched > 50
        assert peak <= 4
        assert peak == 4
        assert_exact_cover(result.leaf_ranges, target)


class TestDeduplication:
    """Test record deduplication."""

    def test_keeps_first_occurrence(self):
        """Test that the first record with an identity wins."""
        first = Record(transaction_id="0xaa", sequence_index=1, block_number=10, payload="first")
        second = Record(transaction_id="0xaa", sequence_index=1, block_number=10, payload="second")
        other = Record(transaction_id="0xaa", sequence_index=2, block_number=10)

        unique = deduplicate_records([first, other, second])

        assert unique == [first, other]

    def test_idempotent(self):
        """Test that deduplicating twice equals deduplicating once."""
        records = [
            Record(transaction_id=f"0x{i % 7}", sequence_index=i % 3, block_number=i)
            for i in range(50)
        ]

        once = deduplicate_records(records)

        assert deduplicate_records(once) == once

    @pytest.mark.asyncio
    async def test_boundary_duplicates_removed(self):
        """Test that a record returned by two chunks is kept once."""
        shared = Record(transaction_id="0xshared", sequence_index=0, block_number=99)

        async def fetch(block_range: BlockRange) -> list[Record]:
            return [*records_for(block_range), shared]

        result = await ChunkedLogRetriever(
            ChunkPolicy(starting_chunk_size=50, min_chunk_size=10)
        ).retrieve(BlockRange(0, 199), fetch)

        assert len(result.records) == 201
        assert result.duplicates_dropped == 3
