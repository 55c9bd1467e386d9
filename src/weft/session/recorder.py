"""Session recorder — append-only JSONL writer for run records."""

from __future__ import annotations

import json
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any, Literal

from pydantic import BaseModel

from weft.session.models import (
    RootChunkEvent,
    RunEndEvent,
    RunStartEvent,
    StreamChunk,
)

EndReason = Literal["complete", "interrupted", "error"]


class SessionRecorder:
    """Records a run's events and chunks to an append-only JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every event.
    """

    def __init__(
        self,
        agent: str,
        prompt: str = "",
        sessions_dir: Path | None = None,
        verbose: bool = False,
    ) -> None:
        self._agent = agent
        self._verbose = verbose
        self._lock = threading.Lock()
        self._seq = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()

        self._run_id = uuid.uuid4().hex[:12]

        if sessions_dir is None:
            sessions_dir = Path("sessions")
        sessions_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        safe_agent = "".join(c if c.isalnum() or c in "-_" else "-" for c in agent)
        base = f"{date_str}_{safe_agent}_{self._run_id}"
        self._session_file = sessions_dir / f"{base}.jsonl"

        self._fh: IO[str] | None = None
        self._verbose_fh: IO[str] | None = None
        try:
            self._fh = self._session_file.open("a", encoding="utf-8")
            if verbose:
                verbose_path = sessions_dir / f"{base}.verbose.jsonl"
                self._verbose_fh = verbose_path.open("a", encoding="utf-8")
            self.record(RunStartEvent(run_id=self._run_id, agent=agent, prompt=prompt))
        except Exception:
            self._close_handles()
            raise

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def run_id(self) -> str:
        """Unique run identifier (12-char hex)."""
        return self._run_id

    @property
    def session_file(self) -> Path:
        """Path to the primary JSONL file."""
        return self._session_file

    @property
    def event_count(self) -> int:
        """Number of records written so far."""
        return self._seq

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, event: BaseModel) -> None:
        """Write *event* to the JSONL file.

        Stamps ``ts`` and ``seq`` on the event, then flushes to disk.
        Silently drops events after the recorder has been closed.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            event.seq = self._seq  # type: ignore[attr-defined]
            event.ts = _iso_now()  # type: ignore[attr-defined]
            self._seq += 1
            line = event.model_dump_json(by_alias=True, exclude_none=True)
            self._fh.write(line + "\n")
            self._fh.flush()

    def record_chunk(self, chunk: StreamChunk) -> None:
        """Persist a live stream chunk; plain strings become root chunks."""
        if isinstance(chunk, str):
            self.record(RootChunkEvent(chunk=chunk))
        else:
            self.record(chunk.model_copy())

    def record_verbose(self, seq: int, full_result: Any) -> None:
        """Write a verbose sidecar entry keyed by *seq*.

        Only writes when verbose mode was enabled at init time.
        """
        if self._verbose_fh is None:
            return
        with self._lock:
            if self._closed:
                return
            payload = json.dumps({"seq": seq, "full_result": full_result}, default=str)
            self._verbose_fh.write(payload + "\n")
            self._verbose_fh.flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def end(self, reason: EndReason) -> None:
        """Write a ``run_end`` record and close all file handles.

        Idempotent.
        """
        if self._closed:
            return

        elapsed_ns = time.monotonic_ns() - self._start_ns
        self.record(RunEndEvent(reason=reason, duration_ms=int(elapsed_ns / 1_000_000)))
        self.close()

    def close(self) -> None:
        """Close file handles **without** writing a ``run_end`` record."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handles()

    def _close_handles(self) -> None:
        """Close underlying file handles (caller must hold lock or be in init)."""
        if self._fh is not None and not self._fh.closed:
            self._fh.close()
        if self._verbose_fh is not None and not self._verbose_fh.closed:
            self._verbose_fh.close()


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
