"""Plain-text feed fetcher for the BKK backend."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from bkk_realtime.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


class FeedFetchError(Exception):
    """Raised when a feed cannot be downloaded (timeout, non-2xx, empty body)."""


class TextFeedFetcher:
    """Downloads ``text/plain`` resources with a single timed attempt.

    Retrying is the caller's business: the coordinator falls back to the
    bundled example payloads instead of hammering the backend.
    """

    def __init__(
        self,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout_sec = timeout_sec
        self._transport = transport

    async def fetch(self, url: str, feed_type: str) -> str:
        """Download ``url`` and return the decoded body.

        Args:
            url: Absolute URL of the resource.
            feed_type: Label for logging (e.g. "Alerts", "routes").

        Raises:
            FeedFetchError: On timeout, transport error, non-2xx status or an
                empty body.
        """
        logger.debug("Fetching feed", feed_type=feed_type, url=url)
        try:
            async with asyncio.timeout(self.timeout_sec), httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_sec),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers={"Accept": "text/plain"})
                response.raise_for_status()
                body = response.text
        except (TimeoutError, httpx.TimeoutException) as exc:
            msg = f"Timed out fetching {feed_type} after {self.timeout_sec}s"
            raise FeedFetchError(msg) from exc
        except httpx.HTTPStatusError as exc:
            msg = f"HTTP {exc.response.status_code} fetching {feed_type}"
            raise FeedFetchError(msg) from exc
        except httpx.RequestError as exc:
            msg = f"Request error fetching {feed_type}: {exc}"
            raise FeedFetchError(msg) from exc

        if not body:
            msg = f"Empty response body for {feed_type}"
            raise FeedFetchError(msg)

        logger.info(
            "Feed downloaded",
            feed_type=feed_type,
            size_kb=round(len(body) / 1024, 1),
        )
        return body
