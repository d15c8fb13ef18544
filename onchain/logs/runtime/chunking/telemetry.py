"""Structured logging for chunking operations.

This module provides telemetry hooks for chunked retrieval, emitting
structured log records (event name as the message, fields in ``extra``).
"""

from __future__ import annotations

import logging

from .definitions import BlockRange, RetrievalResult

logger = logging.getLogger(__name__)


def log_chunk_plan(
    *,
    block_range: BlockRange,
    total_chunks: int,
    chunk_size: int,
) -> None:
    """Log chunk plan creation.

    Args:
        block_range: Range being retrieved
        total_chunks: Number of initial chunks
        chunk_size: Starting chunk width in blocks
    """
    logger.info(
        "chunk_plan_created",
        extra={
            "from_block": block_range.start,
            "to_block": block_range.end,
            "total_chunks": total_chunks,
            "chunk_size": chunk_size,
        },
    )


def log_chunk_completed(
    *,
    block_range: BlockRange,
    rows: int,
    latency_ms: float | None = None,
) -> None:
    """Log completion of a single leaf chunk."""
    logger.info(
        "chunk_completed",
        extra={
            "from_block": block_range.start,
            "to_block": block_range.end,
            "rows": rows,
            "latency_ms": latency_ms,
        },
    )


def log_chunk_split(
    *,
    block_range: BlockRange,
    left: BlockRange,
    right: BlockRange,
    depth: int = 0,
) -> None:
    """Log a split caused by an oversized result.

    Args:
        block_range: Range that was split
        left: Lower half
        right: Upper half
        depth: Splits between the root chunk and the range that was split
    """
    logger.info(
        "chunk_split",
        extra={
            "from_block": block_range.start,
            "to_block": block_range.end,
            "depth": depth,
            "left": str(left),
            "right": str(right),
        },
    )


def log_chunk_retry(*, kind: str, attempt: int, wait_ms: int) -> None:
    """Log a retried upstream call (rate limited or transient)."""
    logger.debug(
        "chunk_retry",
        extra={
            "kind": kind,
            "attempt": attempt,
            "wait_ms": wait_ms,
        },
    )


def log_chunk_range_corrected(*, declared: BlockRange, corrected: BlockRange) -> None:
    """Log a provider-suggested range correction."""
    logger.info(
        "chunk_range_corrected",
        extra={
            "declared": str(declared),
            "corrected": str(corrected),
        },
    )


def log_retrieval_complete(*, block_range: BlockRange, result: RetrievalResult) -> None:
    """Log completion of a whole retrieval."""
    logger.info(
        "retrieval_complete",
        extra={
            "from_block": block_range.start,
            "to_block": block_range.end,
            "chunks_fetched": result.chunks_fetched,
            "total_records": result.total_records,
            "duplicates_dropped": result.duplicates_dropped,
            "splits": result.splits,
            "corrections": result.corrections,
            "retries": result.retries,
            "rate_limited_retries": result.rate_limited_retries,
            "backoff_ms": result.backoff_ms,
            "elapsed_ms": result.elapsed_ms,
        },
    )


def log_chunk_error(
    *,
    block_range: BlockRange,
    error_type: str,
    error_message: str,
) -> None:
    """Log a chunk failure that aborts the retrieval.

    Args:
        block_range: Declared range of the failing chunk
        error_type: Exception class name
        error_message: Exception message
    """
    logger.error(
        "chunk_error",
        extra={
            "from_block": block_range.start,
            "to_block": block_range.end,
            "error_type": error_type,
            "error_message": error_message,
        },
    )
