"""Lifecycle of one streaming search against the KBrowse server.

A session opens the search stream, decides once what kind of body the server
is sending, and turns what arrives into callbacks:

* an error object (``{"error": ...}``) ends the session with ``on_error``;
* a result stream (``[{"type":"pioneer"}`` followed by objects) is framed
  with :class:`FrameParser` and each object becomes ``on_result`` and/or
  ``on_progress``;
* anything else is forwarded verbatim through ``on_raw_chunk``.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from kbrowse.core.config import ERROR_SENTINEL, STREAM_SENTINEL, settings
from kbrowse.core.errors import SessionStateError, TransportError
from kbrowse.schemas.query import QueryState
from kbrowse.services.query_codec import build_path
from kbrowse.services.stream.frame_parser import FrameParser

PROGRESS_FIELDS = ("partition", "offset", "timestamp")


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


ACTIVE_STATES = (SessionState.STARTING, SessionState.STREAMING)


class BodyKind(str, Enum):
    ERROR = "error"
    STREAMING = "streaming"
    RAW = "raw"


def classify_body(text: str) -> Optional[BodyKind]:
    """Classify a response from the start of its text.

    Returns ``None`` while ``text`` is still too short to tell, i.e. it is a
    strict prefix of one of the sentinels.
    """
    for sentinel, kind in ((ERROR_SENTINEL, BodyKind.ERROR), (STREAM_SENTINEL, BodyKind.STREAMING)):
        if text.startswith(sentinel):
            return kind
        if len(text) < len(sentinel) and sentinel.startswith(text):
            return None
    return BodyKind.RAW


class SearchCallbacks:
    """Receives the events of a search session. Every hook is a no-op here."""

    def on_reset(self) -> None:
        pass

    def on_loading_start(self) -> None:
        pass

    def on_loading_end(self) -> None:
        pass

    def on_progress(self, partition: Any, offset: Any, timestamp: Any, count: int) -> None:
        pass

    def on_result(self, record: Dict[str, Any]) -> None:
        pass

    def on_raw_chunk(self, text: str) -> None:
        pass

    def on_error(self, error: Any) -> None:
        pass


class SearchSession:
    """One streaming query, from ``start`` to completion, cancellation or failure."""

    def __init__(
        self,
        transport,
        callbacks: SearchCallbacks,
        logger: logging.Logger,
        print_offset: int = settings.print_offset,
    ) -> None:
        self.transport = transport
        self.callbacks = callbacks
        self.logger = logger
        self.print_offset = print_offset

        self.state = SessionState.IDLE
        self.query: Optional[QueryState] = None
        self.body_kind: Optional[BodyKind] = None
        self.num_results = 0
        self._handle = None
        self._parser: Optional[FrameParser] = None
        self._text = ""
        self._received = 0
        self._loading = False

    # ----------------------- Public API -----------------------

    def start(self, query: QueryState, endpoint: str = "search") -> None:
        """Open the search stream for ``query``."""
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self.state.value}")

        self.query = query
        path = build_path(endpoint, query, self.print_offset)
        self.state = SessionState.STARTING
        self.callbacks.on_reset()
        self._loading = True
        self.callbacks.on_loading_start()

        try:
            handle = self.transport.open(path)
        except TransportError as exc:
            self.handle_transport_error(exc)
            return

        if self.state is not SessionState.STARTING:
            # Cancelled while the request was being sent.
            handle.close()
            return
        self._handle = handle
        self.state = SessionState.STREAMING
        self.logger.debug("Session streaming %s", path)

    def steps(self) -> Iterator[SessionState]:
        """Pump the transport, handling one chunk per iteration."""
        if self.state is not SessionState.STREAMING:
            return
        handle = self._handle
        try:
            for chunk in handle.iter_text():
                if self.state is not SessionState.STREAMING:
                    break
                self.handle_chunk(chunk)
                yield self.state
        except TransportError as exc:
            self.handle_transport_error(exc)
            return
        self.handle_complete()

    def run(self) -> SessionState:
        """Pump the transport until the session ends and return its final state."""
        for _ in self.steps():
            pass
        return self.state

    def cancel(self) -> bool:
        """Abort the request. Results already delivered stay delivered."""
        if self.state not in ACTIVE_STATES:
            return False
        self.state = SessionState.CANCELLED
        self.logger.info("Search cancelled after %d results", self.num_results)
        self._finish()
        return True

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    # ----------------------- Transport events -----------------------

    def handle_progress(self, full_text: str) -> None:
        """Process the cumulative response text received so far."""
        if self.state is not SessionState.STREAMING:
            self.logger.debug("Ignoring data for %s session", self.state.value)
            return
        if len(full_text) < self._received:
            raise ValueError(f"Response text shrank from {self._received} to {len(full_text)} characters")
        self.handle_chunk(full_text[self._received:])

    def handle_chunk(self, chunk: str) -> None:
        """Process text that arrived after everything handled so far."""
        if self.state is not SessionState.STREAMING:
            self.logger.debug("Ignoring data for %s session", self.state.value)
            return
        if not chunk:
            return
        self._received += len(chunk)

        if self.body_kind is None:
            head = self._text + chunk
            kind = classify_body(head)
            if kind is None:
                self._text = head
                return
            self.logger.debug("Response classified as %s", kind.value)
            self.body_kind = kind
            self._text = ""
            chunk = head
            if kind is BodyKind.STREAMING:
                self._parser = FrameParser(len(STREAM_SENTINEL))

        if self.body_kind is BodyKind.ERROR:
            self._text += chunk
            self._report_error_body(final=False)
        elif self.body_kind is BodyKind.STREAMING:
            for frame in self._parser.feed_chunk(chunk):
                if self.state is not SessionState.STREAMING:
                    break
                self._dispatch_frame(frame)
        else:
            self.callbacks.on_raw_chunk(chunk)

    def handle_complete(self) -> None:
        """The server finished sending the response."""
        if self.state is not SessionState.STREAMING:
            return
        if self.body_kind is BodyKind.ERROR:
            self._report_error_body(final=True)
            return
        if self.body_kind is None and self._text:
            # Too short to match a sentinel; it can only be plain text.
            self.body_kind = BodyKind.RAW
            text, self._text = self._text, ""
            self.callbacks.on_raw_chunk(text)
        self.state = SessionState.COMPLETED
        self.logger.info("Search completed with %d results", self.num_results)
        self._finish()

    def handle_transport_error(self, exc: Exception) -> None:
        if self.state not in ACTIVE_STATES:
            return
        self.logger.warning("Search transport failed: %s", exc)
        self._fail({"error": str(exc)})

    @property
    def retained(self) -> int:
        """Characters of the response currently held in memory."""
        parsed = len(self._parser.buffer) if self._parser is not None else 0
        return len(self._text) + parsed

    # ----------------------- Internals -----------------------

    def _dispatch_frame(self, frame: str) -> None:
        try:
            record = json.loads(frame)
        except (json.JSONDecodeError, RecursionError):
            self.logger.debug("json parse failure for: %s", frame[:200])
            return
        if not isinstance(record, dict):
            return

        if record.get("type") == "result":
            self.num_results += 1
            self.callbacks.on_result(record)
            if self.state is not SessionState.STREAMING:
                return
        if any(field in record for field in PROGRESS_FIELDS):
            self.callbacks.on_progress(
                record.get("partition"),
                record.get("offset"),
                record.get("timestamp"),
                self.num_results,
            )

    def _report_error_body(self, final: bool) -> None:
        try:
            error, _ = json.JSONDecoder().raw_decode(self._text)
        except json.JSONDecodeError:
            if not final:
                return
            error = {"error": self._text}
        self._fail(error)

    def _fail(self, error: Any) -> None:
        self.state = SessionState.FAILED
        self.logger.info("Search failed: %s", error)
        self._close_transport()
        self.callbacks.on_error(error)
        self._end_loading()

    def _finish(self) -> None:
        self._close_transport()
        self._end_loading()

    def _close_transport(self) -> None:
        if self._handle is not None:
            self._handle.close()

    def _end_loading(self) -> None:
        if self._loading:
            self._loading = False
            self.callbacks.on_loading_end()


class SearchController:
    """Owns the single live search session of an application."""

    def __init__(
        self,
        transport,
        callbacks: SearchCallbacks,
        logger: logging.Logger,
        print_offset: int = settings.print_offset,
    ) -> None:
        self.transport = transport
        self.callbacks = callbacks
        self.logger = logger
        self.print_offset = print_offset
        self.session: Optional[SearchSession] = None

    def submit(self, query: QueryState, endpoint: str = "search") -> SearchSession:
        """Replace the current session with a new one for ``query``."""
        if self.session is not None and self.session.cancel():
            self.logger.debug("Previous search cancelled by new submission")
        self.session = SearchSession(self.transport, self.callbacks, self.logger, self.print_offset)
        self.session.start(query, endpoint)
        return self.session

    def cancel(self) -> bool:
        if self.session is None:
            return False
        return self.session.cancel()
