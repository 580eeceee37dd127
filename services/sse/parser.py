"""Server-Sent Events framing.

Turns the line stream of one HTTP response body into ``SSEFrame`` objects.

Rules:
- ``event:``, ``data:`` and ``id:`` fields accumulate into a working frame
- repeated ``data:`` lines are joined with ``\\n`` in arrival order
- a blank line dispatches the frame and resets the working state
- ``:`` comment lines, unknown fields and colon-less lines are ignored
- a partial frame left when the stream closes is discarded
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Optional

from shared.logging.logger import get_logger

log = get_logger("sse.parser")


@dataclass
class SSEFrame:
    """One blank-line-delimited SSE unit."""

    event_type: Optional[str]
    data: str
    id: Optional[str] = None


class SSEFrameParser:
    """Incremental parser; feed one line at a time."""

    def __init__(self) -> None:
        self._data_lines: List[str] = []
        self._event_type: Optional[str] = None
        self._event_id: Optional[str] = None
        self._has_fields = False
        self._first_line = True

    def _reset(self) -> None:
        self._data_lines = []
        self._event_type = None
        self._event_id = None
        self._has_fields = False

    @property
    def has_pending(self) -> bool:
        return self._has_fields

    def feed(self, raw_line: str) -> Optional[SSEFrame]:
        """Consume one line; return a frame when ``raw_line`` completes one."""
        line = raw_line.rstrip("\r\n")
        if self._first_line:
            line = line.lstrip("\ufeff")
            self._first_line = False

        # Empty line signals dispatch
        if not line:
            if not self._has_fields:
                return None
            frame = SSEFrame(
                event_type=self._event_type,
                data="\n".join(self._data_lines),
                id=self._event_id,
            )
            self._reset()
            return frame

        # Comments/keepalives begin with ':'
        if line.startswith(":"):
            return None

        field_name, sep, value = line.partition(":")
        if not sep:
            log.debug(f"Ignoring SSE line without field separator: {line[:80]!r}")
            return None
        if value.startswith(" "):
            value = value[1:]

        field_name = field_name.strip().lower()
        if field_name == "data":
            self._data_lines.append(value)
            self._has_fields = True
        elif field_name == "event":
            self._event_type = value.strip() or None
            self._has_fields = True
        elif field_name == "id":
            self._event_id = value.strip() or None
        # Unknown field (e.g. retry:) → ignore

        return None

    def close(self) -> None:
        """Signal end of stream; any partial frame is dropped."""
        if self._has_fields:
            log.debug(
                f"Discarding unterminated SSE frame at end of stream "
                f"(event={self._event_type!r}, data_lines={len(self._data_lines)})"
            )
        self._reset()


def parse_frames(lines: Iterable[str]) -> Iterator[SSEFrame]:
    parser = SSEFrameParser()
    for line in lines:
        frame = parser.feed(line)
        if frame is not None:
            yield frame
    parser.close()


async def iter_frames(lines: AsyncIterable[str]) -> AsyncIterator[SSEFrame]:
    """
    Lazily frame an async line stream.

    Errors raised by the underlying stream propagate unchanged and end the
    sequence.
    """
    parser = SSEFrameParser()
    async for line in lines:
        frame = parser.feed(line)
        if frame is not None:
            yield frame
    parser.close()


__all__ = ["SSEFrame", "SSEFrameParser", "parse_frames", "iter_frames"]
