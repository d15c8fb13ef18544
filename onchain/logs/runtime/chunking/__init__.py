"""Chunked block-range retrieval.

Architecture:
    The chunking layer consists of:
    - definitions.py: BlockRange, ChunkPolicy, ChunkTask, RetrievalResult
    - planners.py: Initial partition of a range into chunk tasks
    - executors.py: ChunkedLogRetriever (bounded workers, retries, splits,
      range corrections, deduplication)
    - telemetry.py: Structured logging
"""

from __future__ import annotations

from .definitions import BlockRange, ChunkPolicy, ChunkTask, FetchCapability, RetrievalResult
from .executors import ChunkedLogRetriever, deduplicate_records
from .planners import ChunkPlanner

__all__ = [
    "BlockRange",
    "ChunkPolicy",
    "ChunkTask",
    "FetchCapability",
    "RetrievalResult",
    "ChunkPlanner",
    "ChunkedLogRetriever",
    "deduplicate_records",
]
