"""Linear block-time model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

MIN_SECONDS_PER_BLOCK = 0.2


class TimeModel(BaseModel):
    """Two-point sample of the chain used to extrapolate block timestamps.

    ``avg_seconds_per_block`` is floored at 0.2 by construction so a stalled
    or degenerate sample window can never make timestamps non-monotonic.
    """

    reference_block: int = Field(..., ge=0)
    reference_timestamp: int = Field(..., ge=0)
    sample_block: int = Field(..., ge=0)
    sample_timestamp: int = Field(..., ge=0)
    avg_seconds_per_block: float = Field(..., ge=MIN_SECONDS_PER_BLOCK)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_order(self) -> TimeModel:
        if self.reference_block < self.sample_block:
            raise ValueError("reference_block must be >= sample_block")
        return self

    @classmethod
    def from_samples(
        cls,
        *,
        reference_block: int,
        reference_timestamp: int,
        sample_block: int,
        sample_timestamp: int,
    ) -> TimeModel:
        """Build a model from two (block, timestamp) samples."""
        return cls(
            reference_block=reference_block,
            reference_timestamp=reference_timestamp,
            sample_block=sample_block,
            sample_timestamp=sample_timestamp,
            avg_seconds_per_block=average_seconds_per_block(
                reference_block, reference_timestamp, sample_block, sample_timestamp
            ),
        )


def average_seconds_per_block(
    reference_block: int,
    reference_timestamp: int,
    sample_block: int,
    sample_timestamp: int,
) -> float:
    """Average block time between two samples, floored at 0.2 seconds."""
    blocks = max(1, reference_block - sample_block)
    seconds = reference_timestamp - sample_timestamp
    return max(MIN_SECONDS_PER_BLOCK, seconds / blocks)
