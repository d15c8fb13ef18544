"""Shared fixtures for unit tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest


class FakeChain:
    """In-memory upstream with a fixed head and a timestamp function.

    Queued ``failures`` are raised, one per call, before any call succeeds.
    """

    def __init__(
        self,
        head: int = 100_000,
        timestamp_of: Callable[[int], int] | None = None,
    ) -> None:
        self.head = head
        self.timestamp_of = timestamp_of or (lambda n: 1_700_000_000 + n)
        self.failures: list[Exception] = []
        self.head_calls = 0
        self.timestamp_calls: list[int] = []

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    async def get_block_number(self) -> int:
        self.head_calls += 1
        self._maybe_fail()
        return self.head

    async def get_block_timestamp(self, block_number: int) -> int:
        self.timestamp_calls.append(block_number)
        self._maybe_fail()
        return self.timestamp_of(block_number)


@pytest.fixture
def fake_chain():
    """FakeChain at head 100000 with two-second blocks."""
    return FakeChain(head=100_000, timestamp_of=lambda n: 2 * n)


@pytest.fixture
def chain_factory():
    """Factory for FakeChain instances with custom head and timestamps."""
    return FakeChain
