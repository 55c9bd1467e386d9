"""Removal of tool-call markup from displayed stream chunks."""

from __future__ import annotations

from collections.abc import Collection, Hashable

from weft.runtime.scanner import TextSegment, flush_buffer, scan_chunk


class MarkupFilter:
    """Strips tool-call markup from chunk streams, one buffer per destination.

    A tag split across chunks is held back until it can be decided, so the
    text returned for a chunk may be shorter than the chunk (or empty).
    """

    def __init__(self, known_names: Collection[str] = ()) -> None:
        self._known_names = known_names
        self._buffers: dict[Hashable, str] = {}

    def feed(self, destination: Hashable, chunk: str) -> str:
        buffer = self._buffers.get(destination, "")
        result = scan_chunk(chunk, buffer, self._known_names)
        if result.buffer:
            self._buffers[destination] = result.buffer
        else:
            self._buffers.pop(destination, None)
        return "".join(i.text for i in result.items if isinstance(i, TextSegment))

    def flush(self, destination: Hashable) -> str:
        """Release whatever is still held for *destination* as plain text."""
        buffer = self._buffers.pop(destination, "")
        items = flush_buffer(buffer, self._known_names)
        return "".join(i.text for i in items if isinstance(i, TextSegment))

    def pending(self) -> list[Hashable]:
        return list(self._buffers)
