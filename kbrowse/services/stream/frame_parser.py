"""Incremental framing of the top-level JSON objects in a growing response."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class StreamCursor:
    """Position of the parser inside the cumulative response text.

    ``consumed_up_to`` is the end of the last emitted object (or of the skipped
    framing prefix). ``scanned_up_to`` is where the next scan resumes; it runs
    ahead of ``consumed_up_to`` while an object is only partially received.
    """

    consumed_up_to: int = 0
    scanned_up_to: int = 0
    object_start: Optional[int] = None
    depth: int = 0
    in_string: bool = False
    escaped: bool = False

    @classmethod
    def after_prefix(cls, prefix_length: int) -> "StreamCursor":
        return cls(consumed_up_to=prefix_length, scanned_up_to=prefix_length)


def scan(full_text: str, cursor: StreamCursor) -> Tuple[List[str], StreamCursor]:
    """Return the objects completed since ``cursor`` and the advanced cursor.

    ``full_text`` must be the whole response received so far; it may only
    have grown since the previous call. Text between objects (commas,
    whitespace, array brackets) is skipped. Braces inside JSON strings do not
    count towards nesting.
    """
    if len(full_text) < cursor.scanned_up_to:
        raise ValueError(
            f"Stream text shrank from {cursor.scanned_up_to} to {len(full_text)} characters"
        )

    frames: List[str] = []
    consumed = cursor.consumed_up_to
    start = cursor.object_start
    depth = cursor.depth
    in_string = cursor.in_string
    escaped = cursor.escaped

    i = cursor.scanned_up_to
    end = len(full_text)
    while i < end:
        ch = full_text[i]

        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue

        if ch == "{":
            if depth == 0:
                # Anything between the previous object and this one is framing.
                start = i
            depth += 1
        elif ch == "}":
            if depth > 0:
                depth -= 1
                if depth == 0:
                    frames.append(full_text[start : i + 1])
                    consumed = i + 1
                    start = None
        elif ch == '"' and depth > 0:
            in_string = True
        i += 1

    return frames, replace(
        cursor,
        consumed_up_to=consumed,
        scanned_up_to=end,
        object_start=start,
        depth=depth,
        in_string=in_string,
        escaped=escaped,
    )


class FrameParser:
    """Holds the cursor of one response stream and feeds it to :func:`scan`.

    :meth:`feed` takes the whole text received so far. :meth:`feed_chunk`
    takes only the new text and keeps a buffer that never holds more than the
    object still being received. Use one or the other for a given stream.
    """

    def __init__(self, prefix_length: int = 0) -> None:
        self.cursor = StreamCursor.after_prefix(prefix_length)
        self.buffer = ""

    def feed(self, full_text: str) -> List[str]:
        frames, self.cursor = scan(full_text, self.cursor)
        return frames

    def feed_chunk(self, chunk: str) -> List[str]:
        self.buffer += chunk
        frames, cursor = scan(self.buffer, self.cursor)

        # Everything before the open object has been scanned and is not needed again.
        drop = cursor.object_start if cursor.object_start is not None else cursor.scanned_up_to
        if drop:
            self.buffer = self.buffer[drop:]
            cursor = replace(
                cursor,
                consumed_up_to=max(cursor.consumed_up_to - drop, 0),
                scanned_up_to=cursor.scanned_up_to - drop,
                object_start=None if cursor.object_start is None else cursor.object_start - drop,
            )
        self.cursor = cursor
        return frames
