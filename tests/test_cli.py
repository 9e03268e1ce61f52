import io
import json

from kbrowse import cli
from kbrowse.schemas.query import QueryState
from kbrowse.services.query_codec import encode_state


def test_query_from_args_builds_state():
    args = cli.build_parser().parse_args(
        ["search", "--topic", "orders", "--key", "k", "--value", "paid", "--offset", "-10", "--follow"]
    )
    assert cli.query_from_args(args) == QueryState(
        topic="orders", key="k", val_regex="paid", relative_offset=-10, follow=True
    )


def test_query_from_args_prefers_share_state():
    state = encode_state(QueryState(topic="payments", partitions="1,2"))
    args = cli.build_parser().parse_args(["search", "--topic", "ignored", "--state", state])
    assert cli.query_from_args(args) == QueryState(topic="payments", partitions="1,2")


def test_terminal_callbacks_print_results_and_progress():
    out, err = io.StringIO(), io.StringIO()
    callbacks = cli.TerminalCallbacks(out, err)
    callbacks.on_result({"type": "result", "offset": 3})
    callbacks.on_progress(0, 3, 99, 1)
    callbacks.on_error({"error": "boom"})

    assert json.loads(out.getvalue()) == {"type": "result", "offset": 3}
    assert "partition=0 offset=3 timestamp=99 results=1" in err.getvalue()
    assert 'Error: {"error": "boom"}' in err.getvalue()


def test_share_command_prints_state_and_curl(capsys):
    assert cli.main(["--url", "http://kbrowse:4000", "share", "--topic", "orders"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("?")
    assert lines[1] == 'curl "http://kbrowse:4000/search?bootstrap-servers=&topics=orders&print-offset=10000"'


def test_bad_share_state_exits_with_error():
    assert cli.main(["share", "--state", "not-json"]) == 2


def test_search_command_reports_failure(monkeypatch):
    captured = {}

    def fake_run_search(client, query, callbacks, cached=False):
        captured["query"] = query
        captured["cached"] = cached
        return cli.SessionState.FAILED

    monkeypatch.setattr(cli, "run_search", fake_run_search)
    assert cli.main(["search", "--topic", "orders", "--cached"]) == 1
    assert captured == {"query": QueryState(topic="orders"), "cached": True}
