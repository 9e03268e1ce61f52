"""Client for the non-streaming endpoints of a KBrowse server."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import requests

from kbrowse.core.config import settings
from kbrowse.core.errors import TransportError
from kbrowse.schemas.api import ServerConfigs
from kbrowse.schemas.query import QueryState
from kbrowse.services.search_session import SearchCallbacks, SearchSession
from kbrowse.services.transport import RequestsTransport


def topics_for(configs: ServerConfigs, servers: str, selected: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
    """Return the sorted topics of ``servers`` and the topic to select.

    The previous selection is kept even when the servers changed; without one
    the first topic is selected.
    """
    topics = sorted(configs.bootstrap_topics.get(servers, []))
    if selected is None and topics:
        selected = topics[0]
    return topics, selected


class KBrowseClient:
    """Encapsulates calls to a KBrowse server."""

    def __init__(
        self,
        logger: logging.Logger,
        base_url: str = settings.kbrowse_url,
        session: Optional[requests.Session] = None,
        timeout: float = settings.request_timeout,
        print_offset: int = settings.print_offset,
    ) -> None:
        self.logger = logger
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.timeout = timeout
        self.print_offset = print_offset
        self.transport = RequestsTransport(logger, self.base_url, self.http, timeout)

    def _get_json(self, path: str, params: dict):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

    def server_configs(self, bootstrap_servers: Optional[str] = None) -> ServerConfigs:
        """Fetch the servers, deserializers and topics the server offers."""
        params = {"bootstrap-servers": bootstrap_servers} if bootstrap_servers else {}
        data = self._get_json("/server-configs", params)
        configs = ServerConfigs.model_validate(data)
        self.logger.debug("Loaded configs for %d bootstrap servers", len(configs.bootstrap_servers))
        return configs

    def default_partition(self, bootstrap_servers: str, topic: str, key: str) -> int:
        """Look up the partition the server would assign to ``key``."""
        if not key:
            raise ValueError("Please enter a key first.")
        params = {"bootstrap-servers": bootstrap_servers, "topic": topic, "key": key}
        data = self._get_json("/default-partition", params)
        try:
            return int(data)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Unexpected default partition response: {data!r}") from exc

    def new_session(self, callbacks: SearchCallbacks) -> SearchSession:
        return SearchSession(self.transport, callbacks, self.logger, self.print_offset)

    def search(self, query: QueryState, callbacks: SearchCallbacks) -> SearchSession:
        """Run a search to the end and return the finished session."""
        session = self.new_session(callbacks)
        session.start(query, "search")
        session.run()
        return session

    def cached(self, query: QueryState, callbacks: SearchCallbacks) -> SearchSession:
        """Replay the results the server cached for ``query``."""
        session = self.new_session(callbacks)
        session.start(query, "cached")
        session.run()
        return session
