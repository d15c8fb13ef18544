"""Data models.

Architecture:
    Frozen pydantic v2 models (BlockRange is a frozen dataclass) so records
    and time models can be shared across concurrent chunk fetches.

Model Categories:
    - Ranges: BlockRange (inclusive block span)
    - Records: Record (opaque event with a dedup identity)
    - Time: TimeModel (linear block-time extrapolation)
"""

from .block_range import BlockRange
from .record import Record
from .time_model import MIN_SECONDS_PER_BLOCK, TimeModel, average_seconds_per_block

__all__ = [
    "BlockRange",
    "Record",
    "TimeModel",
    "MIN_SECONDS_PER_BLOCK",
    "average_seconds_per_block",
]
