"""URL downloads for ``file.fetch`` items, on httpx."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class Fetcher:
    """GET a URL and return its body.

    *transport* lets tests substitute an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    def fetch(self, url: str) -> bytes:
        """Download *url*, following redirects.

        Raises:
            httpx.HTTPStatusError: On a 4xx/5xx response.
            httpx.RequestError: If the server cannot be reached.
        """
        logger.debug("GET %s", url)
        with httpx.Client(
            timeout=self._timeout, follow_redirects=True, transport=self._transport
        ) as client:
            resp = client.get(url)
            resp.raise_for_status()
            return resp.content
