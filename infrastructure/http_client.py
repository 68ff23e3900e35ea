"""Shared async HTTP client for outbound calls (mail API, image host)."""

from typing import Any

import httpx

from shared.logging import get_logger

log = get_logger(__name__)


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient.

    One instance per external service keeps timeouts independently
    configurable and tags transport failures with the service name.
    """

    def __init__(self, name: str, timeout: float = 5.0) -> None:
        self.name = name
        self._client = httpx.AsyncClient(timeout=timeout)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.post(url, **kwargs)
        except httpx.HTTPError as e:
            log.warning(
                "http_request_failed",
                service=self.name,
                method="POST",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
