"""Time window to block range estimation."""

from __future__ import annotations

import logging
import math

from ..models import BlockRange
from .time_model import DEFAULT_SAMPLE_OFFSET, sample_time_model
from .upstream import BlockClock

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCAN_BLOCKS = 200_000


def estimate_start_block(
    *,
    head: int,
    avg_seconds_per_block: float,
    window_seconds: float,
    max_scan_blocks: int,
) -> int:
    """First block of a ``window_seconds`` window ending at ``head``.

    The administrative cap wins whenever it is more restrictive than the
    estimate.
    """
    estimated_blocks = math.ceil(window_seconds / avg_seconds_per_block)
    candidate = max(0, head - estimated_blocks)
    hard_cap = max(0, head - max_scan_blocks)
    return max(candidate, hard_cap)


class BlockRangeEstimator:
    """Converts "the last N seconds" into a concrete block range.

    Samples the instantaneous head on every call (never the TTL-cached time
    model) since the range must end at the current head.
    """

    def __init__(
        self,
        clock: BlockClock,
        *,
        max_scan_blocks: int = DEFAULT_MAX_SCAN_BLOCKS,
        sample_offset: int = DEFAULT_SAMPLE_OFFSET,
    ) -> None:
        if max_scan_blocks < 0:
            raise ValueError("max_scan_blocks must be >= 0")
        if sample_offset <= 0:
            raise ValueError("sample_offset must be positive")
        self._clock = clock
        self._max_scan_blocks = max_scan_blocks
        self._sample_offset = sample_offset

    @property
    def max_scan_blocks(self) -> int:
        return self._max_scan_blocks

    async def estimate_range(self, window_seconds: float) -> BlockRange:
        """Estimate the block range covering the last ``window_seconds``.

        Raises:
            ValueError: If ``window_seconds`` is not positive
            FatalProviderError: If head or sample data is unavailable
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        model = await sample_time_model(self._clock, sample_offset=self._sample_offset)
        start = estimate_start_block(
            head=model.reference_block,
            avg_seconds_per_block=model.avg_seconds_per_block,
            window_seconds=window_seconds,
            max_scan_blocks=self._max_scan_blocks,
        )
        block_range = BlockRange(start, model.reference_block)
        logger.debug(
            "Estimated blocks %s for %ss window (%.3fs/block, cap %d)",
            block_range,
            window_seconds,
            model.avg_seconds_per_block,
            self._max_scan_blocks,
        )
        return block_range
