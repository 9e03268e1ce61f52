"""Command line entry point: run a search in the terminal or serve the relay."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional, TextIO

from dotenv import load_dotenv

from kbrowse.core.config import LOG_FORMAT, settings
from kbrowse.core.errors import QueryStateDecodeError
from kbrowse.schemas.query import QueryState
from kbrowse.services import query_codec
from kbrowse.services.kbrowse_client import KBrowseClient
from kbrowse.services.search_session import SearchCallbacks, SearchController, SessionState


class TerminalCallbacks(SearchCallbacks):
    """Prints results to ``out`` and loading status to ``err``."""

    def __init__(self, out: TextIO = sys.stdout, err: TextIO = sys.stderr) -> None:
        self.out = out
        self.err = err

    def on_loading_start(self) -> None:
        self.err.write("Loading...\n")

    def on_loading_end(self) -> None:
        self.err.write("\n")

    def on_progress(self, partition, offset, timestamp, count) -> None:
        self.err.write(
            f"\rpartition={partition} offset={offset} timestamp={timestamp} results={count}"
        )
        self.err.flush()

    def on_result(self, record) -> None:
        self.out.write(json.dumps(record, indent=4, ensure_ascii=False) + "\n")
        self.out.flush()

    def on_raw_chunk(self, text) -> None:
        self.out.write(text)
        self.out.flush()

    def on_error(self, error) -> None:
        self.err.write(f"Error: {json.dumps(error, ensure_ascii=False)}\n")


def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--topic", default="", help="Topic to search")
    parser.add_argument("--servers", default="", help="Bootstrap servers of the cluster")
    parser.add_argument("--key", default="", help="A regex to filter keys on")
    parser.add_argument("--value", default="", help="A regex to filter values on")
    parser.add_argument(
        "--offset",
        type=int,
        default=None,
        help="Relative offset to start from; negative values count back from the latest record",
    )
    parser.add_argument("--follow", action="store_true", help="Keep following the topic")
    parser.add_argument(
        "--default-partition",
        action="store_true",
        help="Only subscribe to the partition corresponding to the key",
    )
    parser.add_argument("--partitions", default="", help="Comma separated list of partitions")
    parser.add_argument("--deserializer", default="", help="Value deserializer")
    parser.add_argument("--schema-registry", default="", help="Schema registry URL")
    parser.add_argument("--state", default=None, help="Encoded query state from a share link")


def query_from_args(args: argparse.Namespace) -> QueryState:
    if args.state:
        return query_codec.decode_state(args.state)
    return QueryState(
        key=args.key,
        val_regex=args.value,
        bootstrap_servers=args.servers,
        topic=args.topic,
        relative_offset=args.offset,
        follow=args.follow,
        default_partition=args.default_partition,
        value_deserializer=args.deserializer,
        schema_registry_url=args.schema_registry,
        partitions=args.partitions,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kbrowse", description="Search topics on a KBrowse server")
    parser.add_argument("--url", default=settings.kbrowse_url, help="KBrowse server URL")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Stream matching records to stdout")
    _add_query_arguments(search)
    search.add_argument("--cached", action="store_true", help="Replay cached results instead")

    share = sub.add_parser("share", help="Print the share state and curl command of a query")
    _add_query_arguments(share)

    serve = sub.add_parser("serve", help="Run the relay API")
    serve.add_argument("--port", type=int, default=settings.default_port)
    serve.add_argument("--host", default="127.0.0.1")
    return parser


def run_search(client: KBrowseClient, query: QueryState, callbacks: SearchCallbacks, cached: bool = False) -> SessionState:
    controller = SearchController(client.transport, callbacks, client.logger, client.print_offset)
    session = controller.submit(query, "cached" if cached else "search")
    try:
        return session.run()
    except KeyboardInterrupt:
        controller.cancel()
        return session.state


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    logger = logging.getLogger("kbrowse")
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("kbrowse.main:app", host=args.host, port=args.port)
        return 0

    try:
        query = query_from_args(args)
    except QueryStateDecodeError as exc:
        logger.error("%s", exc)
        return 2
    if args.command == "share":
        print(f"?{query_codec.encode_state(query)}")
        print(query_codec.build_curl_command(args.url, query, settings.print_offset))
        return 0

    client = KBrowseClient(logger, base_url=args.url)
    state = run_search(client, query, TerminalCallbacks(), cached=args.cached)
    return 1 if state is SessionState.FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
