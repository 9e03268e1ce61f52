from collections import deque
import json
import logging
from typing import Any, Deque, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from kbrowse.core.config import settings
from kbrowse.core.errors import QueryStateDecodeError, TransportError
from kbrowse.schemas.api import DefaultPartitionResponse, ServerConfigs, ShareResponse, TopicsResponse
from kbrowse.schemas.query import QueryState
from kbrowse.services import query_codec
from kbrowse.services.kbrowse_client import KBrowseClient, topics_for
from kbrowse.services.search_session import SearchCallbacks, SearchSession

logger = logging.getLogger("services")
router = APIRouter()

_client: Optional[KBrowseClient] = None


def get_client() -> KBrowseClient:
    """FastAPI dependency providing the shared upstream client."""
    global _client
    if _client is None:
        _client = KBrowseClient(logger)
    return _client


class EventQueue(SearchCallbacks):
    """Collects session callbacks as JSON events for the relay stream."""

    def __init__(self) -> None:
        self.events: Deque[Dict[str, Any]] = deque()

    def on_loading_start(self) -> None:
        self.events.append({"event": "loading_start"})

    def on_loading_end(self) -> None:
        self.events.append({"event": "loading_end"})

    def on_progress(self, partition, offset, timestamp, count) -> None:
        self.events.append(
            {"event": "progress", "partition": partition, "offset": offset, "timestamp": timestamp, "count": count}
        )

    def on_result(self, record) -> None:
        self.events.append({"event": "result", "record": record})

    def on_raw_chunk(self, text) -> None:
        self.events.append({"event": "raw", "text": text})

    def on_error(self, error) -> None:
        self.events.append({"event": "error", "error": error})

    def drain(self) -> Iterator[str]:
        while self.events:
            yield f"data: {json.dumps(self.events.popleft(), ensure_ascii=False)}\n\n"


def _relay(session: SearchSession, queue: EventQueue, query: QueryState) -> Iterator[str]:
    # Upstream is only opened once the body is iterated.
    try:
        session.start(query)
        yield from queue.drain()
        for _ in session.steps():
            yield from queue.drain()
        yield from queue.drain()
        # Final empty message signals the end of the search
        yield "data: {}\n\n"
    finally:
        if session.cancel():
            logger.info("Relay client went away; upstream search cancelled")


@router.post("/search")
def search(query: QueryState, client: KBrowseClient = Depends(get_client)):
    queue = EventQueue()
    session = client.new_session(queue)
    return StreamingResponse(
        _relay(session, queue, query),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering for nginx
        },
    )


@router.post("/share", response_model=ShareResponse)
def share(query: QueryState):
    return ShareResponse(
        state=query_codec.encode_state(query),
        search_path=query_codec.build_path("search", query, settings.print_offset),
        curl=query_codec.build_curl_command(settings.kbrowse_url, query, settings.print_offset),
    )


@router.get("/share", response_model=QueryState, response_model_by_alias=True)
def load_share(state: str = Query(default="")):
    try:
        return query_codec.decode_state(state)
    except QueryStateDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/server-configs", response_model=ServerConfigs, response_model_by_alias=True)
def server_configs(
    bootstrap_servers: Optional[str] = Query(default=None),
    client: KBrowseClient = Depends(get_client),
):
    try:
        return client.server_configs(bootstrap_servers)
    except TransportError as exc:
        logger.error(f"Failed to load server configs: {exc}")
        raise HTTPException(status_code=502, detail=str(exc))


@router.get("/topics", response_model=TopicsResponse)
def topics(
    bootstrap_servers: str,
    selected: Optional[str] = Query(default=None),
    client: KBrowseClient = Depends(get_client),
):
    try:
        configs = client.server_configs(bootstrap_servers)
    except TransportError as exc:
        logger.error(f"Failed to load topics: {exc}")
        raise HTTPException(status_code=502, detail=str(exc))
    names, chosen = topics_for(configs, bootstrap_servers, selected)
    return TopicsResponse(topics=names, selected=chosen)


@router.get("/default-partition", response_model=DefaultPartitionResponse)
def default_partition(
    bootstrap_servers: str,
    topic: str,
    key: str = Query(default=""),
    client: KBrowseClient = Depends(get_client),
):
    try:
        partition = client.default_partition(bootstrap_servers, topic, key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except TransportError as exc:
        logger.error(f"Default partition lookup failed: {exc}")
        raise HTTPException(status_code=502, detail=str(exc))
    return DefaultPartitionResponse(key=key, partition=partition)
