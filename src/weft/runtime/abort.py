"""Run-scoped cancellation signal."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class AbortError(Exception):
    """Raised when work is attempted on an aborted run.

    This is an expected outcome (the user cancelled), not a failure.
    """

    name = "AbortError"

    def __init__(self, reason: str = "Run cancelled by user") -> None:
        super().__init__(reason)
        self.reason = reason


class AbortSignal:
    """One-shot, non-resumable abort flag shared by everything in a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str = "Run cancelled by user") -> None:
        """Set the signal. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Run aborted: %s", reason)

    def throw_if_aborted(self) -> None:
        if self._event.is_set():
            raise AbortError(self._reason or "Run cancelled by user")

    async def wait(self) -> None:
        """Block until the signal is set."""
        await self._event.wait()
