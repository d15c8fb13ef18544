"""Chunk planning logic for determining chunk windows.

This module provides the ChunkPlanner class that cuts a requested block
range into the initial set of chunk tasks.
"""

from __future__ import annotations

from .definitions import BlockRange, ChunkPolicy, ChunkTask
from .telemetry import log_chunk_plan


class ChunkPlanner:
    """Plans initial chunk windows for a block range.

    The planner cuts the range into contiguous, non-overlapping chunks of the
    policy's starting size. Later splits and corrections are the executor's
    concern.
    """

    def __init__(self, policy: ChunkPolicy) -> None:
        self._policy = policy

    def plan(self, block_range: BlockRange) -> list[ChunkTask]:
        """Plan chunk tasks covering ``block_range`` exactly.

        Args:
            block_range: Inclusive range to cover

        Returns:
            Chunk tasks in ascending block order
        """
        chunk_size = self._policy.starting_chunk_size
        tasks = [ChunkTask(range=chunk) for chunk in block_range.partition(chunk_size)]

        log_chunk_plan(
            block_range=block_range,
            total_chunks=len(tasks),
            chunk_size=chunk_size,
        )

        return tasks
