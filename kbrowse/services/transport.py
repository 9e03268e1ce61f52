"""Streaming HTTP transport used by search sessions."""

from __future__ import annotations

import logging
from typing import Iterator, Optional

import requests

from kbrowse.core.config import settings
from kbrowse.core.errors import TransportError


class ResponseStream:
    """Handle on one streaming HTTP response."""

    def __init__(self, response: requests.Response, chunk_size: int) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self.closed = False

    def iter_text(self) -> Iterator[str]:
        """Yield decoded chunks of the body in arrival order."""
        if self._response.encoding is None:
            self._response.encoding = "utf-8"
        try:
            for chunk in self._response.iter_content(chunk_size=self._chunk_size, decode_unicode=True):
                if chunk:
                    yield chunk
        except requests.RequestException as exc:
            if self.closed:
                return
            raise TransportError(f"Error while reading response stream: {exc}") from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._response.close()


class RequestsTransport:
    """Opens streaming GET requests against the KBrowse server."""

    def __init__(
        self,
        logger: logging.Logger,
        base_url: str = settings.kbrowse_url,
        session: Optional[requests.Session] = None,
        timeout: float = settings.request_timeout,
        chunk_size: int = settings.chunk_size,
    ) -> None:
        self.logger = logger
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def open(self, path: str) -> ResponseStream:
        url = f"{self.base_url}{path}"
        self.logger.info("Opening stream %s", url)
        try:
            # Only the connect phase is bounded; a followed search may idle for long.
            response = self.session.get(url, stream=True, timeout=(self.timeout, None))
        except requests.RequestException as exc:
            raise TransportError(f"Could not reach {url}: {exc}") from exc
        if not response.ok:
            # The server reports search errors in the body, so keep reading it.
            self.logger.warning("Search request returned HTTP %s", response.status_code)
        return ResponseStream(response, self.chunk_size)
