"""
Capture raw streaming traffic for troubleshooting.

When stream tracing is enabled each streaming request gets its own log file
holding the raw response text as received and the events decoded from it.
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Optional


def _utc_stamp(fmt: Optional[str] = None) -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    if fmt:
        return now.strftime(fmt)
    return now.isoformat(timespec="milliseconds")


class StreamTracer:
    """Writes one request's stream into a size-capped log file."""

    TRUNCATED_MARKER = "[stream trace truncated]\n"

    def __init__(self, request_id: str, base_dir: str, max_bytes: Optional[int]):
        self.request_id = request_id
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.path = self.base_dir / f"{_utc_stamp('%Y%m%dT%H%M%SZ')}_chat_{request_id}.log"
        self._file = self.path.open("w", encoding="utf-8")

        self._remaining = max_bytes if isinstance(max_bytes, int) and max_bytes > 0 else None
        self._truncated = False

        self.log_note("stream tracer initialized")

    def log_raw_chunk(self, chunk: str) -> None:
        """Record response text exactly as read from the connection."""
        self._write("RAW", chunk)

    def log_event(self, event: object) -> None:
        """Record an event decoded from the stream."""
        self._write("EVENT", repr(event))

    def log_note(self, note: str) -> None:
        self._write("NOTE", note)

    def log_error(self, message: str) -> None:
        self._write("ERROR", message)

    def close(self) -> None:
        if self._file.closed:
            return
        try:
            self.log_note("stream tracer closed")
        finally:
            self._file.close()

    def _write(self, label: str, payload: str) -> None:
        if self._file.closed or self._truncated:
            return

        entry = f"[{_utc_stamp()}] [{label}] len={len(payload)}\n{payload}\n"

        if self._remaining is not None:
            encoded = entry.encode("utf-8", "replace")
            if len(encoded) > self._remaining:
                self._file.write(encoded[:self._remaining].decode("utf-8", "ignore"))
                self._file.write("\n" + self.TRUNCATED_MARKER)
                self._file.flush()
                self._remaining = 0
                self._truncated = True
                return
            self._remaining -= len(encoded)

        self._file.write(entry)
        self._file.flush()


def maybe_create_stream_tracer(
    enabled: bool,
    request_id: str,
    base_dir: str,
    max_bytes: Optional[int],
) -> Optional[StreamTracer]:
    """Factory helper that respects the global enable flag."""
    if not enabled:
        return None
    return StreamTracer(request_id=request_id, base_dir=base_dir, max_bytes=max_bytes)
