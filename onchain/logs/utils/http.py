"""HTTP client helper."""

from typing import Any, Dict, Optional

import aiohttp

from ..core.exceptions import ProviderError, RateLimitError, TransientProviderError

_TRANSIENT_STATUSES = {500, 502, 503, 504, 520, 522, 524}


def _retry_after_ms(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(float(value) * 1000)
    except ValueError:
        return None


class HTTPClient:
    """Async HTTP client wrapper.

    Non-2xx responses are raised as provider errors: 429 as RateLimitError
    (honouring ``Retry-After``), gateway/5xx statuses as
    TransientProviderError, everything else as ProviderError. Messages
    include ``Status: <code>`` so they stay classifiable as plain text.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30.0) -> None:
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    def _url(self, url: str) -> str:
        # If base_url is set and url is relative, combine them
        if self.base_url and not url.startswith("http"):
            return f"{self.base_url}{url}"
        return url

    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        async with self.session.post(self._url(url), json=payload, headers=headers) as response:
            if response.status >= 400:
                body = await response.text()
                self._raise_for_status(response.status, body, response.headers.get("Retry-After"))
            return await response.json(content_type=None)

    @staticmethod
    def _raise_for_status(status: int, body: str, retry_after: Optional[str]) -> None:
        message = f"HTTP request failed. Status: {status}. Body: {body[:500]}"
        if status == 429:
            raise RateLimitError(message, retry_after_ms=_retry_after_ms(retry_after))
        if status in _TRANSIENT_STATUSES:
            raise TransientProviderError(message, status_code=status)
        raise ProviderError(message, status_code=status)

    async def close(self) -> None:
        """Close session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HTTPClient":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()
