"""Shared HTTP client for third-party upstream APIs.

Architecture:
- One pooled httpx client per upstream (lazily created, closed on shutdown)
- Fixed per-upstream headers and a bounded timeout
- Failures mapped onto UpstreamTimeout / UpstreamError so routes can relay
  the upstream status and body, or answer 502 when there is none
"""

import logging
from typing import Any, Optional

import httpx

from pangan_proxy.models import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class UpstreamClient:
    """Thin async JSON client for one upstream API.

    Subclasses set ``NAME`` (log tag) and pass their base URL, headers and
    timeout. ``transport`` lets tests swap in ``httpx.MockTransport``.
    """

    NAME = "UPSTREAM"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            logger.warning(f"[{self.NAME}] {method} {url} timed out after {self._timeout}s")
            raise UpstreamTimeout(f"{self.NAME} request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"[{self.NAME}] {method} {url} returned {status}")
            raise UpstreamError(
                f"{self.NAME} returned HTTP {status}",
                status_code=status,
                body=_response_body(e.response),
            ) from e
        except httpx.RequestError as e:
            logger.error(f"[{self.NAME}] {method} {url} failed: {type(e).__name__}: {e}")
            raise UpstreamError(f"{self.NAME} request failed: {e}") from e

    async def get_json(
        self,
        url: str,
        params: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET ``url`` (relative to the base URL) and decode the JSON body."""
        response = await self._send("GET", url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"{self.NAME} returned a non-JSON body") from e

    async def get_bytes(
        self, url: str, headers: Optional[dict[str, str]] = None
    ) -> tuple[bytes, Optional[str]]:
        """GET ``url`` and return the raw body with its content type."""
        response = await self._send("GET", url, headers=headers)
        return response.content, response.headers.get("content-type")
