"""JSON-RPC upstream provider.

Architecture:
    Thin async client for the three calls the retrieval engine needs:
    ``eth_blockNumber``, ``eth_getBlockByNumber`` and ``eth_getLogs``. It
    issues exactly one request per call and never retries; failures are
    raised as ProviderError subclasses (or left as aiohttp network errors)
    for BackoffClassifier to sort out.

Error Mapping:
    - HTTP 429 -> RateLimitError, 5xx -> TransientProviderError (HTTPClient)
    - JSON-RPC ``error`` object -> ProviderError with ``code`` and the
      provider's message, classified later by message signature
    - Unparseable results -> FatalProviderError
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import pydantic

from ...core.exceptions import FatalProviderError, ProviderError, TransientProviderError
from ...models import BlockRange, Record
from ...runtime.chunking.definitions import FetchCapability
from ...utils.http import HTTPClient

logger = logging.getLogger(__name__)

RPC_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def _to_int(value: Any, what: str) -> int:
    try:
        if isinstance(value, str):
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    except ValueError as e:
        raise FatalProviderError(f"Malformed {what} from provider: {value!r}") from e
    raise FatalProviderError(f"Malformed {what} from provider: {value!r}")


def _rpc_error(error: Any) -> ProviderError:
    if not isinstance(error, dict):
        return ProviderError(f"RPC error: {error}")
    code = error.get("code")
    message = str(error.get("message", ""))
    data = error.get("data")
    if isinstance(data, str) and data and data not in message:
        message = f"{message} ({data})"
    return ProviderError(
        f"RPC error {code}: {message}",
        code=code if isinstance(code, int) else None,
    )


class JsonRpcProvider:
    """Async JSON-RPC 2.0 client for an EVM-style node.

    Example:
        >>> async with JsonRpcProvider("https://rpc.example.org") as rpc:
        ...     head = await rpc.get_block_number()
        ...     fetch = rpc.log_fetcher(address="0xfeec...")
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        http: HTTPClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not rpc_url:
            raise ValueError("rpc_url must be a non-empty string")
        self.rpc_url = rpc_url
        self._http = http if http is not None else HTTPClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list[Any]) -> Any:
        """Issue one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        data = await self._http.post_json(self.rpc_url, payload, headers=RPC_HEADERS)
        if not isinstance(data, dict):
            raise FatalProviderError(f"Malformed JSON-RPC response to {method}: {data!r}")
        if data.get("error") is not None:
            raise _rpc_error(data["error"])
        if "result" not in data:
            raise FatalProviderError(f"JSON-RPC response to {method} has no result")
        return data["result"]

    async def get_block_number(self) -> int:
        return _to_int(await self.call("eth_blockNumber", []), "block number")

    async def get_block_timestamp(self, block_number: int) -> int:
        block = await self.call("eth_getBlockByNumber", [hex(block_number), False])
        if block is None:
            # Lagging load-balanced nodes may not have the block yet
            raise TransientProviderError(f"Block {block_number} not found")
        if not isinstance(block, dict) or "timestamp" not in block:
            raise FatalProviderError(f"Malformed block {block_number} from provider")
        return _to_int(block["timestamp"], "block timestamp")

    async def get_logs(
        self,
        block_range: BlockRange,
        *,
        address: str | list[str] | None = None,
        topics: list[Any] | None = None,
    ) -> list[Record]:
        """Fetch the logs of ``block_range`` as records."""
        query: dict[str, Any] = {
            "fromBlock": hex(block_range.start),
            "toBlock": hex(block_range.end),
        }
        if address is not None:
            query["address"] = address
        if topics is not None:
            query["topics"] = topics

        entries = await self.call("eth_getLogs", [query])
        if not isinstance(entries, list):
            raise FatalProviderError(f"Malformed eth_getLogs result for blocks {block_range}")
        try:
            return [Record.from_rpc_log(entry) for entry in entries if not entry.get("removed")]
        except (KeyError, AttributeError, pydantic.ValidationError) as e:
            raise FatalProviderError(f"Malformed log entry for blocks {block_range}: {e}") from e

    def log_fetcher(
        self,
        *,
        address: str | list[str] | None = None,
        topics: list[Any] | None = None,
    ) -> FetchCapability:
        """Build a range-scoped fetch capability for one log filter."""

        async def fetch(block_range: BlockRange) -> list[Record]:
            return await self.get_logs(block_range, address=address, topics=topics)

        return fetch

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> JsonRpcProvider:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
