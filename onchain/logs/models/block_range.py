"""Block range data model."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class BlockRange:
    """Inclusive range of block numbers.

    Attributes:
        start: First block (inclusive)
        end: Last block (inclusive)
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError("BlockRange start must be >= 0")
        if self.start > self.end:
            raise ValueError(f"BlockRange start {self.start} is after end {self.end}")

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def contains(self, block_number: int) -> bool:
        return self.start <= block_number <= self.end

    def split(self) -> tuple[BlockRange, BlockRange]:
        """Split at the midpoint into two non-empty halves.

        Raises:
            ValueError: If the range is a single block
        """
        if self.size < 2:
            raise ValueError("Cannot split a single-block range")
        mid = self.start + self.size // 2 - 1
        return BlockRange(self.start, mid), BlockRange(mid + 1, self.end)

    def partition(self, chunk_size: int) -> list[BlockRange]:
        """Cut into contiguous chunks of ``chunk_size``; the last may be shorter."""
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        chunks: list[BlockRange] = []
        start = self.start
        while start <= self.end:
            end = min(start + chunk_size - 1, self.end)
            chunks.append(BlockRange(start, end))
            start = end + 1
        return chunks

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"
