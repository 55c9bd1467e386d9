"""Delivery of lifecycle events and stream chunks to injected sinks."""

from __future__ import annotations

import inspect
from typing import Any

from weft.constants import EventSink


async def emit(sink: EventSink | None, item: Any) -> None:
    """Hand *item* to *sink*, awaiting it when the sink is a coroutine."""
    if sink is None:
        return
    result = sink(item)
    if inspect.isawaitable(result):
        await result
