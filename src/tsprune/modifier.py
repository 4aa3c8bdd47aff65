from __future__ import annotations

import difflib
import logging
from collections.abc import Iterable

from tsprune.models import RemovalSpan

logger = logging.getLogger(__name__)

_BLANKS = b" \t\r"
_INDENT = b" \t"
_COMMA = ord(",")
_NEWLINE = ord("\n")


def expand_span_for_removal(source: bytes | bytearray, start: int, end: int) -> tuple[int, int]:
    """Widen ``[start, end)`` over the separator and blanks around it.

    A trailing comma (or else the end of the line) is consumed first; only
    when neither is there does a leading comma go instead. Indentation is
    absorbed whenever nothing but blanks precede the span on its line.
    """
    length = len(source)
    new_start, new_end = start, end

    cursor = end
    while cursor < length and source[cursor] in _BLANKS:
        cursor += 1
    if cursor < length and source[cursor] == _COMMA:
        cursor += 1
        while cursor < length and source[cursor] in _BLANKS:
            cursor += 1
        new_end = cursor
    elif cursor < length and source[cursor] == _NEWLINE:
        new_end = cursor + 1

    if new_end == end:
        cursor = start
        while cursor > 0 and source[cursor - 1] in _BLANKS:
            cursor -= 1
        if cursor > 0 and source[cursor - 1] == _COMMA:
            new_start = cursor - 1

    cursor = new_start
    while cursor > 0 and source[cursor - 1] in _INDENT:
        cursor -= 1
    if cursor == 0 or source[cursor - 1] == _NEWLINE:
        new_start = cursor

    return new_start, new_end


def apply_removals(source: str, spans: Iterable[RemovalSpan]) -> str:
    """Delete every span from ``source``, highest offset first.

    Span offsets are UTF-8 byte offsets into ``source``. Each span is expanded
    against the buffer as it stands when the span is reached: the bytes below
    its start are still the original ones, and a comma already taken by a
    later neighbour is no longer there to be claimed twice.
    """
    buffer = bytearray(source.encode("utf-8"))
    for span in sorted(spans, key=lambda s: s.start, reverse=True):
        start, end = expand_span_for_removal(buffer, span.start, span.end)
        del buffer[start:end]
        logger.debug("Removed expanded span %d..%d", start, end)
    return buffer.decode("utf-8")


def render_diff(path: str, before: str, after: str) -> str:
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )
