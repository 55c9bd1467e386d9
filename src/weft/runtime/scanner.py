"""Incremental scanner for tool-call markup embedded in a model's text stream.

A tool call looks like::

    <read_files>
    <paths>src/app.py</paths>
    </read_files>

i.e. an opening ``<tool_name>`` tag, zero or more ``<key>value</key>``
parameter elements, and the matching closing tag.  Chunks may split any of
this at arbitrary points; whatever cannot be decided yet is carried over in a
buffer and re-examined when the next chunk arrives.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_NAME = r"[A-Za-z_][A-Za-z0-9_-]*"
_OPEN_RE = re.compile(rf"<({_NAME})>")
_PARTIAL_OPEN_RE = re.compile(rf"<(?:{_NAME})?\Z")


@dataclass(frozen=True)
class TextSegment:
    """Plain text between (or around) tool calls."""

    text: str


@dataclass(frozen=True)
class TagInvocation:
    """A complete, well-formed tool call."""

    tag_name: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TagError:
    """A complete tag for a known tool whose body could not be parsed."""

    tag_name: str
    message: str
    raw: str = ""


ScanItem = TextSegment | TagInvocation | TagError


@dataclass
class ScanResult:
    """Items recognised in one call plus the carry-over buffer."""

    items: list[ScanItem]
    buffer: str


class _Incomplete:
    """Marker: not enough input yet to decide what starts here."""


_INCOMPLETE = _Incomplete()

_Match = tuple[TagInvocation | TagError, int] | _Incomplete | None


def scan_chunk(
    chunk: str,
    buffer: str,
    known_names: Collection[str] = (),
) -> ScanResult:
    """Scan ``buffer + chunk`` and return recognised items and the new buffer."""
    items, rest = _scan(buffer + chunk, known_names, final=False)
    return ScanResult(items=items, buffer=rest)


def flush_buffer(buffer: str, known_names: Collection[str] = ()) -> list[ScanItem]:
    """Resolve whatever is left at end of stream.

    An unterminated tag is emitted as plain text; scanning resumes right
    after its ``<`` so complete tags held behind it are still recognised.
    """
    items, _ = _scan(buffer, known_names, final=True)
    return items


class TagStreamScanner:
    """Stateful wrapper around :func:`scan_chunk` for a single stream."""

    def __init__(self, known_names: Collection[str] = ()) -> None:
        self._known_names = known_names
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> list[ScanItem]:
        result = scan_chunk(chunk, self._buffer, self._known_names)
        self._buffer = result.buffer
        return result.items

    def flush(self) -> list[ScanItem]:
        buffer, self._buffer = self._buffer, ""
        if buffer:
            logger.debug("Flushing %d buffered chars at end of stream", len(buffer))
        return flush_buffer(buffer, self._known_names)


def coalesce(items: list[ScanItem]) -> list[ScanItem]:
    """Merge adjacent text segments (handy when comparing chunkings)."""
    merged: list[ScanItem] = []
    for item in items:
        if (
            isinstance(item, TextSegment)
            and merged
            and isinstance(merged[-1], TextSegment)
        ):
            merged[-1] = TextSegment(merged[-1].text + item.text)
        elif not isinstance(item, TextSegment) or item.text:
            merged.append(item)
    return merged


# ------------------------------------------------------------------ #
# Internals
# ------------------------------------------------------------------ #


def _scan(
    text: str,
    known_names: Collection[str],
    *,
    final: bool,
) -> tuple[list[ScanItem], str]:
    items: list[ScanItem] = []
    pending: list[str] = []

    def _emit_text() -> None:
        joined = "".join(pending)
        pending.clear()
        if joined:
            items.append(TextSegment(joined))

    pos = 0
    end = len(text)
    while pos < end:
        lt = text.find("<", pos)
        if lt == -1:
            pending.append(text[pos:])
            break
        pending.append(text[pos:lt])

        outcome = _match_tag(text, lt, known_names)
        if isinstance(outcome, _Incomplete):
            if not final:
                _emit_text()
                return items, text[lt:]
            outcome = None
        if outcome is None:
            pending.append("<")
            pos = lt + 1
            continue

        item, pos = outcome
        _emit_text()
        items.append(item)

    _emit_text()
    return items, ""


def _match_tag(text: str, start: int, known_names: Collection[str]) -> _Match:
    """Try to read a whole tool call starting at ``text[start] == '<'``."""
    m = _OPEN_RE.match(text, start)
    if m is None:
        return _INCOMPLETE if _PARTIAL_OPEN_RE.match(text, start) else None

    name = m.group(1)
    close = f"</{name}>"
    attributes: dict[str, str] = {}
    pos = m.end()
    while True:
        pos = _skip_whitespace(text, pos)
        if pos >= len(text):
            return _INCOMPLETE
        if text.startswith(close, pos):
            return TagInvocation(name, attributes), pos + len(close)
        if close.startswith(text[pos:]):
            return _INCOMPLETE

        param = _OPEN_RE.match(text, pos)
        if param is None:
            if _PARTIAL_OPEN_RE.match(text, pos):
                return _INCOMPLETE
            return _malformed(text, start, pos, name, known_names)

        key = param.group(1)
        key_close = f"</{key}>"
        value_end = text.find(key_close, param.end())
        if value_end == -1:
            return _INCOMPLETE
        attributes[key] = _trim_value(text[param.end() : value_end])
        pos = value_end + len(key_close)


def _malformed(
    text: str,
    start: int,
    pos: int,
    name: str,
    known_names: Collection[str],
) -> _Match:
    # Unknown names with a non-parameter body are ordinary markup in prose.
    if name not in known_names:
        return None
    close = f"</{name}>"
    close_at = text.find(close, pos)
    if close_at == -1:
        return _INCOMPLETE
    tag_end = close_at + len(close)
    msg = f"Invalid parameters for tool '{name}': expected <key>value</key> elements"
    return TagError(name, msg, raw=text[start:tag_end]), tag_end


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _trim_value(value: str) -> str:
    if value.startswith("\r\n"):
        value = value[2:]
    elif value.startswith("\n"):
        value = value[1:]
    if value.endswith("\r\n"):
        value = value[:-2]
    elif value.endswith("\n"):
        value = value[:-1]
    return value
