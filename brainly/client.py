"""
HTTP client for the Brainly content and search API.

Implements ContentApiProtocol over httpx.AsyncClient. Every request
carries a bearer credential obtained from an external token provider;
a missing credential fails the call before any network activity.

Transport failures surface as NetworkError, rejected credentials as
AuthenticationError, an overloaded summarizer as ServiceOverloadedError.
Cancelling the awaiting task aborts the underlying request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional
from urllib.parse import quote, urlparse

import httpx

from .errors import ApiError, AuthenticationError, NetworkError, ServiceOverloadedError
from .types import Content

logger = logging.getLogger(__name__)

# Retry config for idempotent reads
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 1.0  # seconds

DEFAULT_TIMEOUT = 30.0

# Status codes the summarizer uses when it is shedding load
OVERLOAD_STATUS_CODES = frozenset({429, 503, 529})

TokenProvider = Callable[[], Optional[str]]


class ContentClient:
    """HTTP client for the Brainly API."""

    def __init__(
        self,
        api_url: str,
        token_provider: TokenProvider,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._token_provider = token_provider

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect API credentials, or use localhost for local development."
                )

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise AuthenticationError("Not signed in: no API token available")
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one request, mapping failures onto the error taxonomy."""
        headers = self._auth_headers()
        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            # Transport, decoding and redirect failures
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"{method} {path} rejected credentials", status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise ApiError(
                f"{method} {path} failed: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(f"Malformed JSON response from {resp.request.url}", resp.status_code) from e
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected response shape from {resp.request.url}", resp.status_code)
        return data

    @staticmethod
    def _parse_contents(records: Any) -> list[Content]:
        try:
            return [Content.from_dict(r) for r in records or []]
        except (TypeError, ValueError, AttributeError) as e:
            raise ApiError(f"Malformed content in response: {e}") from e

    # -- Search ---------------------------------------------------------------

    async def search(self, query: str, limit: int) -> list[Content]:
        """POST /api/v1/search -> scored results, best first."""
        resp = await self._request("POST", "/api/v1/search", json={"query": query, "limit": limit})
        data = self._json(resp)
        return self._parse_contents(data.get("results"))

    async def summarize(self, query: str, context: list[dict[str, Any]]) -> str:
        """POST /api/v1/search/summarize -> free-text answer."""
        try:
            resp = await self._request(
                "POST", "/api/v1/search/summarize",
                json={"query": query, "context": context},
            )
        except ApiError as e:
            if e.status_code in OVERLOAD_STATUS_CODES:
                raise ServiceOverloadedError(
                    "Summarization service is overloaded", status_code=e.status_code,
                ) from e
            raise
        data = self._json(resp)
        return str(data.get("response") or "")

    # -- Content --------------------------------------------------------------

    async def list_content(self) -> list[Content]:
        """GET /api/v1/content -> all content for the current user.

        Retries up to MAX_RETRIES times with exponential backoff on
        transient errors (5xx, timeouts, connection errors).
        """
        last_error: Optional[ApiError] = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = await self._request("GET", "/api/v1/content")
                return self._parse_contents(self._json(resp).get("content"))
            except NetworkError as e:
                last_error = e
            except AuthenticationError:
                raise
            except ApiError as e:
                if e.status_code is None or e.status_code < 500:
                    raise
                last_error = e

            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BACKOFF_BASE * (2 ** attempt)
                logger.info(
                    "List content attempt %d failed, retrying in %.1fs: %s",
                    attempt + 1, delay, last_error,
                )
                await asyncio.sleep(delay)

        raise last_error

    async def create_content(self, partial: dict[str, Any]) -> Content:
        """POST /api/v1/content -> created content."""
        resp = await self._request("POST", "/api/v1/content", json=partial)
        return self._one(resp)

    async def update_content(self, content_id: str, partial: dict[str, Any]) -> Content:
        """PUT /api/v1/content/{id} -> updated content."""
        resp = await self._request("PUT", f"/api/v1/content/{quote(content_id, safe='')}", json=partial)
        return self._one(resp)

    async def delete_content(self, content_id: str) -> None:
        """DELETE /api/v1/content/{id}."""
        await self._request("DELETE", f"/api/v1/content/{quote(content_id, safe='')}")

    def _one(self, resp: httpx.Response) -> Content:
        record = self._json(resp).get("content")
        if not isinstance(record, dict):
            raise ApiError("Response did not include a content record", resp.status_code)
        return self._parse_contents([record])[0]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
