import json

import pytest

from kbrowse.core.config import STREAM_SENTINEL
from kbrowse.services.stream.frame_parser import FrameParser, StreamCursor, scan

PREFIX = len(STREAM_SENTINEL)


def test_skips_prefix_and_emits_complete_objects():
    parser = FrameParser(PREFIX)
    text = STREAM_SENTINEL + ',{"type":"result","offset":1},{"type":"result","offset":2}'
    frames = parser.feed(text)
    assert [json.loads(f)["offset"] for f in frames] == [1, 2]
    assert parser.cursor.consumed_up_to == len(text)
    assert parser.cursor.depth == 0


def test_partial_object_waits_for_the_rest():
    parser = FrameParser(PREFIX)
    first = STREAM_SENTINEL + ',{"type":"result","value":{"a":'
    assert parser.feed(first) == []
    assert parser.cursor.depth == 2
    assert parser.cursor.object_start == PREFIX + 1
    assert parser.cursor.consumed_up_to == PREFIX

    full = first + '1}}'
    assert parser.feed(full) == ['{"type":"result","value":{"a":1}}']
    assert parser.cursor.object_start is None


def test_no_new_frames_without_growth():
    parser = FrameParser(PREFIX)
    text = STREAM_SENTINEL + ',{"type":"result"}'
    assert len(parser.feed(text)) == 1
    assert parser.feed(text) == []
    assert parser.feed(text) == []


def test_scan_resumes_where_it_stopped():
    cursor = StreamCursor.after_prefix(0)
    frames, cursor = scan('[{"a":1', cursor)
    assert frames == []
    assert cursor.scanned_up_to == 7
    frames, cursor = scan('[{"a":1}, {"b":2}]', cursor)
    assert frames == ['{"a":1}', '{"b":2}']
    assert cursor.consumed_up_to == len('[{"a":1}, {"b":2}')


def test_scan_returns_new_cursor_without_mutating_old():
    start = StreamCursor.after_prefix(0)
    _, after = scan('{"a":1}', start)
    assert start.consumed_up_to == 0
    assert after.consumed_up_to == 7


def test_braces_inside_strings_do_not_nest():
    parser = FrameParser(0)
    text = '{"value":"a } and { b","escaped":"quote \\" }"}{"n":2}'
    frames = parser.feed(text)
    assert len(frames) == 2
    assert json.loads(frames[0])["value"] == "a } and { b"
    assert json.loads(frames[1]) == {"n": 2}


def test_string_split_across_chunks():
    parser = FrameParser(0)
    assert parser.feed('{"v":"ab\\') == []
    assert parser.cursor.in_string and parser.cursor.escaped
    assert parser.feed('{"v":"ab\\"}"}') == ['{"v":"ab\\"}"}']


def test_stray_closing_brace_is_framing_noise():
    parser = FrameParser(0)
    assert parser.feed('}, {"a":1}') == ['{"a":1}']


def test_malformed_object_is_still_framed():
    parser = FrameParser(0)
    assert parser.feed('{not json},{"ok":true}') == ["{not json}", '{"ok":true}']


def test_every_span_emitted_once_across_byte_sized_snapshots():
    objects = [{"type": "result", "partition": i, "payload": {"k": [i, {"x": "}"}]}} for i in range(5)]
    text = STREAM_SENTINEL + "".join("," + json.dumps(o) for o in objects)
    parser = FrameParser(PREFIX)
    frames = []
    for end in range(len(text) + 1):
        frames.extend(parser.feed(text[:end]))
    assert [json.loads(f) for f in frames] == objects


def test_shrinking_text_is_rejected():
    parser = FrameParser(0)
    parser.feed('{"a":1}')
    with pytest.raises(ValueError):
        parser.feed("{")


def test_feed_chunk_keeps_only_the_open_object():
    parser = FrameParser(PREFIX)
    assert parser.feed_chunk(STREAM_SENTINEL + ',{"type":"result","n":1},{"type":') == ['{"type":"result","n":1}']
    assert parser.buffer == '{"type":'
    assert parser.cursor.object_start == 0

    assert parser.feed_chunk('"result","n":2}') == ['{"type":"result","n":2}']
    assert parser.buffer == ""
    assert parser.cursor == StreamCursor()


def test_feed_chunk_matches_feed_on_split_input():
    objects = [{"type": "result", "partition": i, "value": "{" * i} for i in range(6)]
    text = STREAM_SENTINEL + "".join("," + json.dumps(o) for o in objects) + "]"
    chunked = FrameParser(PREFIX)
    frames = chunked.feed_chunk(text[:PREFIX + 3])
    for start in range(PREFIX + 3, len(text), 7):
        frames.extend(chunked.feed_chunk(text[start : start + 7]))
        assert len(chunked.buffer) <= max(len(json.dumps(o)) for o in objects)
    assert [json.loads(f) for f in frames] == objects
