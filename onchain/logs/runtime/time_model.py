"""Approximate block timestamps from a cached linear model.

Architecture:
    One model is built from two samples (head and a block ``sample_offset``
    behind it) and cached for a short TTL, so bursts of callers share one
    model while the chain head keeps moving. Timestamps for any block are
    then extrapolated linearly with no per-block lookups. Error is bounded by
    local block-time variance, which is fine for bucketed analytics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from ..models import Record, TimeModel
from .upstream import BlockClock

logger = logging.getLogger(__name__)

TIME_MODEL_CACHE_KEY = "time_model"
DEFAULT_SAMPLE_OFFSET = 2000
DEFAULT_TIME_MODEL_TTL = 30.0


def approximate_timestamp(model: TimeModel, block_number: int) -> int:
    """Extrapolate the timestamp of ``block_number``.

    Blocks at or past the reference block get the reference timestamp.
    """
    delta_blocks = max(0, model.reference_block - block_number)
    return model.reference_timestamp - round(delta_blocks * model.avg_seconds_per_block)


def apply_approximate_timestamps(records: Iterable[Record], model: TimeModel) -> list[Record]:
    """Return copies of ``records`` with ``timestamp`` filled from ``model``."""
    return [
        record.model_copy(update={"timestamp": approximate_timestamp(model, record.block_number)})
        for record in records
    ]


async def sample_time_model(clock: BlockClock, *, sample_offset: int, head: int | None = None) -> TimeModel:
    """Build a TimeModel from the head (or ``head``) and a block behind it."""
    if head is None:
        head = await clock.head()
    sample_block = max(0, head - sample_offset)
    reference_ts = await clock.timestamp(head)
    sample_ts = await clock.timestamp(sample_block)
    return TimeModel.from_samples(
        reference_block=head,
        reference_timestamp=reference_ts,
        sample_block=sample_block,
        sample_timestamp=sample_ts,
    )


class ApproximateTimestampModel:
    """Lazily built, TTL-cached TimeModel."""

    def __init__(
        self,
        clock: BlockClock,
        *,
        sample_offset: int = DEFAULT_SAMPLE_OFFSET,
        ttl: float = DEFAULT_TIME_MODEL_TTL,
    ) -> None:
        if sample_offset <= 0:
            raise ValueError("sample_offset must be positive")
        self._clock = clock
        self._cache = clock.cache
        self._sample_offset = sample_offset
        self._ttl = ttl
        self._lock = asyncio.Lock()

    async def current_model(self) -> TimeModel:
        """Return the cached model, building it if absent or expired."""
        model = self._cache.get(TIME_MODEL_CACHE_KEY)
        if model is not None:
            return model
        # One builder at a time; the rest pick up its result
        async with self._lock:
            model = self._cache.get(TIME_MODEL_CACHE_KEY)
            if model is not None:
                return model
            model = await sample_time_model(self._clock, sample_offset=self._sample_offset)
            self._cache.set(TIME_MODEL_CACHE_KEY, model, ttl=self._ttl)
            logger.debug(
                "Built time model at block %d (%.3fs/block)",
                model.reference_block,
                model.avg_seconds_per_block,
            )
            return model

    async def timestamp_for(self, block_number: int) -> int:
        return approximate_timestamp(await self.current_model(), block_number)

    async def apply(self, records: Iterable[Record]) -> list[Record]:
        return apply_approximate_timestamps(records, await self.current_model())
