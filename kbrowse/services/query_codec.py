"""Serialization of QueryState for share links and outbound search requests."""

from __future__ import annotations

import json
from typing import Dict
from urllib.parse import quote, unquote, urlencode

from pydantic import ValidationError

from kbrowse.core.errors import QueryStateDecodeError
from kbrowse.schemas.query import QueryState


def encode_state(state: QueryState) -> str:
    """Encode ``state`` as percent-encoded JSON suitable for ``?<state>``."""
    payload = state.model_dump(by_alias=True)
    return quote(json.dumps(payload, ensure_ascii=False, separators=(",", ":")), safe="")


def decode_state(text: str) -> QueryState:
    """Inverse of :func:`encode_state`.

    Missing fields take their defaults and unknown fields are ignored. A
    leading ``?`` is accepted so a raw location query string can be passed.
    """
    raw = unquote((text or "").strip())
    if raw.startswith("?"):
        raw = raw[1:]
    if not raw:
        return QueryState()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise QueryStateDecodeError(f"Query state is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise QueryStateDecodeError("Query state must be a JSON object")
    try:
        return QueryState.model_validate(payload)
    except ValidationError as exc:
        raise QueryStateDecodeError(f"Invalid query state: {exc}") from exc


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_search_params(state: QueryState, print_offset: int) -> Dict[str, str]:
    """Build the query parameters of an upstream search request.

    Optional fields are only sent when set. The value regex is wrapped in
    ``.*`` on both sides so it matches anywhere in a value, while the key
    regex is sent exactly as typed.
    """
    params: Dict[str, str] = {
        "bootstrap-servers": state.bootstrap_servers,
        # The server accepts a CSV of topics; a session only ever searches one.
        "topics": state.topic,
        "print-offset": str(print_offset),
    }
    if state.key:
        params["key-regex"] = state.key
    if state.val_regex:
        params["val-regex"] = f".*{state.val_regex}.*"
    if state.value_deserializer:
        params["value-deserializer"] = state.value_deserializer
    if state.schema_registry_url:
        params["schema-registry-url"] = state.schema_registry_url
    if state.relative_offset is not None:
        params["relative-offset"] = str(state.relative_offset)
    if state.follow:
        params["follow"] = _flag(state.follow)
    if state.default_partition:
        params["default-partition"] = _flag(state.default_partition)
    if state.partitions:
        params["partitions"] = state.partitions
    return params


def build_path(endpoint: str, state: QueryState, print_offset: int) -> str:
    """Return ``/<endpoint>?<params>`` for ``state``."""
    query = urlencode(build_search_params(state, print_offset), quote_via=quote)
    return f"/{endpoint.strip('/')}?{query}"


def build_curl_command(base_url: str, state: QueryState, print_offset: int) -> str:
    """Return a curl command line that reproduces the search by hand."""
    return f'curl "{base_url.rstrip("/")}{build_path("search", state, print_offset)}"'
