"""
Incremental decoder for ``data:``-framed chat completion streams.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError

from errors import ParseError
from .events import StreamContent, StreamDone, StreamEvent, StreamFinished
from .models import StreamChunk, Usage

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class StreamFrameDecoder:
    """Turns raw response text into stream events

    Text may arrive split at any point; partial lines are buffered until
    their newline arrives. Only ``data:`` lines are frames. A frame that
    does not decode is skipped. After ``[DONE]`` all further input is
    ignored.
    """

    def __init__(self, request_id: str = "-") -> None:
        self.request_id = request_id
        self._buffer = ""
        self._done = False
        self._usage: Optional[Usage] = None
        self.skipped_frames = 0

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, chunk: str) -> List[StreamEvent]:
        """Consume raw chunk text and return events for completed lines."""
        events: List[StreamEvent] = []
        if not chunk or self._done:
            return events

        self._buffer += chunk

        while not self._done:
            newline_idx = self._buffer.find("\n")
            if newline_idx == -1:
                break

            line = self._buffer[:newline_idx]
            self._buffer = self._buffer[newline_idx + 1:]
            events.extend(self.decode_line(line))

        if self._done:
            self._buffer = ""
        return events

    def flush(self) -> List[StreamEvent]:
        """Decode a trailing line that had no newline (used at stream end)."""
        line, self._buffer = self._buffer, ""
        if self._done or not line:
            return []
        return self.decode_line(line)

    def decode_line(self, line: str) -> List[StreamEvent]:
        # Trim CR from Windows-style endings
        line = line.rstrip("\r")
        if not line.strip() or not line.startswith(DATA_PREFIX):
            return []

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            self._done = True
            return [StreamDone()]

        try:
            chunk = self._parse_chunk(payload)
        except ParseError as e:
            self.skipped_frames += 1
            logger.debug(f"[{self.request_id}] Skipping malformed frame: {e}")
            return []

        if chunk.usage is not None:
            self._usage = chunk.usage

        events: List[StreamEvent] = []
        if not chunk.choices:
            return events

        choice = chunk.choices[0]
        if choice.delta.content:
            events.append(StreamContent(text=choice.delta.content))
        if choice.finish_reason:
            events.append(StreamFinished(reason=choice.finish_reason, usage=self._usage))
        return events

    @staticmethod
    def _parse_chunk(payload: str) -> StreamChunk:
        try:
            return StreamChunk.model_validate_json(payload)
        except ValidationError as e:
            raise ParseError(f"invalid chunk {payload[:200]!r}: {e.error_count()} error(s)") from e
