"""Client for the third-party analyst rating listing API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from stock_recommender.schemas.stocks import UpstreamPage

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """Raised when a page cannot be fetched from the listing API."""


class UpstreamTransportError(UpstreamError):
    """Timeout or connection failure talking to the listing API."""


class UpstreamDecodeError(UpstreamError):
    """The listing API answered with a body that is not a valid page."""


class UpstreamClient:
    """Authenticated page fetcher; a non-2xx answer counts as an empty page."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._api_token = api_token
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Token {self._api_token}", "Accept": "application/json"}

    async def fetch_page(self, page: int) -> UpstreamPage:
        try:
            response = await self._client.get(
                self._base_url,
                params={"next_page": page},
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(f"Failed to fetch page {page}: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning("Upstream returned status %s for page %d; treating as empty", response.status_code, page)
            return UpstreamPage()

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise UpstreamDecodeError(f"Page {page} returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise UpstreamDecodeError(f"Page {page} returned {type(payload).__name__} instead of an object")
        try:
            return UpstreamPage.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamDecodeError(f"Page {page} does not match the listing format: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["UpstreamClient", "UpstreamDecodeError", "UpstreamError", "UpstreamTransportError"]
