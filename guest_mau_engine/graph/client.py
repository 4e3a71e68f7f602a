"""
Read-only async client for Microsoft Graph.

Every request passes the SafetyGuardian first. Requests are sequential: each
call is awaited before the next one starts, so throttling is handled by a
single backoff loop rather than a shared limiter.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    BACKOFF_MULTIPLIER,
    DEFAULT_PAGE_SIZE,
    GRAPH_API_VERSION,
    GRAPH_BASE_URL,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    MAX_PAGES_PER_ENDPOINT,
    MAX_RETRIES,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("guest_mau_engine.graph")

RETRYABLE_STATUS = (429, 503, 504)


class GraphAPIError(Exception):
    """A Graph response that retrying will not fix."""

    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Graph returned {status_code} for {url}: {message}")


class GraphClient:
    """
    Thin wrapper over httpx.AsyncClient for the Graph endpoints the engine reads.

    Soft failures come back as marker dicts instead of exceptions so probes can
    inspect them: `_forbidden`, `_not_found` and `_max_retries_exceeded`.
    Paginated reads turn `_forbidden` and `_max_retries_exceeded` into
    GraphAPIError.
    """

    def __init__(
        self,
        access_token: str,
        guardian: SafetyGuardian,
        max_pages: int = MAX_PAGES_PER_ENDPOINT,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self.max_pages = max_pages
        self._requests = 0
        self._throttled = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GraphClient":
        self._client = httpx.AsyncClient(
            headers=self._headers(),
            timeout=httpx.Timeout(60.0, connect=30.0),
        )
        return self

    async def __aexit__(self, *exc_info):
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            # $count and filtered counts on directory objects
            "ConsistencyLevel": "eventual",
        }

    def set_access_token(self, access_token: str):
        self.access_token = access_token
        if self._client is not None:
            self._client.headers["Authorization"] = f"Bearer {access_token}"

    def _build_url(self, endpoint: str, version: str = GRAPH_API_VERSION) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{GRAPH_BASE_URL}/{version}/{endpoint.lstrip('/')}"

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        version: str = GRAPH_API_VERSION,
    ) -> dict:
        """One GET with throttling retries. Soft failures return marker dicts."""
        url = self._build_url(endpoint, version)
        self.guardian.validate_request("GET", url)
        return await self._get_with_retry(url, params)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        version: str = GRAPH_API_VERSION,
        top: Optional[int] = None,
    ) -> list[dict]:
        return [item async for item in self.get_all_pages_stream(endpoint, params, version, top)]

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        version: str = GRAPH_API_VERSION,
        top: Optional[int] = None,
    ) -> AsyncGenerator[Any, None]:
        """
        Yield every item across @odata.nextLink pages, up to `max_pages`.
        A page whose `value` is a single object is yielded as one item.
        """
        query: Optional[dict] = dict(params or {})
        query.setdefault("$top", str(min(top or DEFAULT_PAGE_SIZE, DEFAULT_PAGE_SIZE)))
        url: Optional[str] = self._build_url(endpoint, version)
        pages = 0

        while url and pages < self.max_pages:
            self.guardian.validate_request("GET", url)
            page = await self._get_with_retry(url, query)

            if page.get("_forbidden"):
                raise GraphAPIError(403, page.get("_error_message", "missing API permission"), url)
            if page.get("_max_retries_exceeded"):
                raise GraphAPIError(429, "still throttled after all retries", url)

            value = page.get("value")
            if isinstance(value, list):
                for item in value:
                    yield item
            elif value is not None:
                yield value

            # The next link already encodes $filter/$select/$top.
            url = page.get("@odata.nextLink")
            query = None
            pages += 1

        if url:
            logger.warning(f"Stopped paging {endpoint} after {self.max_pages} pages")

    async def get_count(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        version: str = GRAPH_API_VERSION,
    ) -> int:
        """Return `{endpoint}/$count` as an int. Raises GraphAPIError on failure."""
        count_url = self._build_url(endpoint, version).rstrip("/") + "/$count"
        self.guardian.validate_request("GET", count_url)

        response = await self._send_with_retry(count_url, params)
        if response is None:
            raise GraphAPIError(429, "still throttled after all retries", count_url)
        body = response.text.strip()
        if response.status_code != 200:
            raise GraphAPIError(response.status_code, body[:200], count_url)
        if not body.isdigit():
            raise GraphAPIError(200, f"Non-numeric $count body: {body[:50]!r}", count_url)
        return int(body)

    async def _get_with_retry(self, url: str, params: Optional[dict]) -> dict:
        response = await self._send_with_retry(url, params)
        if response is None:
            return {"value": [], "_max_retries_exceeded": True}
        return self._interpret(response, url)

    async def _send_with_retry(self, url: str, params: Optional[dict]) -> Optional[httpx.Response]:
        """The first non-throttled response, or None once retries run out."""
        delay = INITIAL_BACKOFF_SECONDS

        for attempt in range(1, MAX_RETRIES + 2):
            try:
                response = await self._execute_raw("GET", url, params=params)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt > MAX_RETRIES:
                    raise
                logger.info(f"{type(e).__name__} on {url} (attempt {attempt}); retrying in {delay:.0f}s")
                await asyncio.sleep(delay)
                delay = min(delay * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            self._requests += 1
            status = response.status_code

            if status in RETRYABLE_STATUS:
                self._throttled += 1
                wait = max(_retry_after(response.headers.get("Retry-After"), delay), delay)
                logger.info(f"Graph returned {status} for {url}; waiting {wait:.1f}s (attempt {attempt})")
                await asyncio.sleep(wait)
                delay = min(delay * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            return response

        return None

    def _interpret(self, response: httpx.Response, url: str) -> dict:
        status = response.status_code
        if status == 200:
            if not response.content.strip():
                return {"value": []}
            try:
                return response.json()
            except ValueError:
                logger.debug(f"Ignoring non-JSON body from {url}")
                return {"value": []}
        if status == 204:
            return {}
        if status == 404:
            logger.debug(f"Not found: {url}")
            return {"value": [], "_not_found": True}

        message = _error_message(response)
        if status == 403:
            logger.info(f"Forbidden: {url}: {message}")
            return {"value": [], "_forbidden": True, "_error_message": message}
        raise GraphAPIError(status, message, url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("GraphClient must be used inside 'async with'.")
        if method != "GET":
            raise SafetyViolation(f"Refusing {method} at transport level")
        return await self._client.get(url, params=params)

    def get_stats(self) -> dict:
        return {"total_requests": self._requests, "throttle_events": self._throttled}


def _retry_after(header: Optional[str], default: float) -> float:
    """Seconds to wait from a Retry-After header in delta-seconds or HTTP-date form."""
    if not header:
        return default
    try:
        return float(header)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparsable Retry-After {header!r}")
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return min((when - datetime.now(timezone.utc)).total_seconds(), MAX_BACKOFF_SECONDS)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message", response.text[:200])
    return response.text[:200]
