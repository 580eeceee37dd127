"""Decode SSE frames into tagged event envelopes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from services.sse.parser import SSEFrame
from shared.chat.json_value import JSONValue
from shared.logging.logger import get_logger

log = get_logger("sse.decoder")


class ParseError(Exception):
    """Raised when a frame's data field cannot be decoded as JSON."""

    def __init__(self, message: str, frame: Optional[SSEFrame] = None):
        super().__init__(message)
        self.frame = frame


class EventKind(str, Enum):
    CONTENT = "content"
    NOTIFICATION = "notification"
    STOP = "stop"
    MAP = "map"
    INTERFACE = "interface"
    UNKNOWN = "unknown"


EVENT_TYPE_TABLE: Dict[str, EventKind] = {
    "content": EventKind.CONTENT,
    "notification": EventKind.NOTIFICATION,
    "toast": EventKind.NOTIFICATION,
    "stop": EventKind.STOP,
    "finish": EventKind.STOP,
    "map": EventKind.MAP,
    "interface": EventKind.INTERFACE,
    "hook": EventKind.INTERFACE,
}


@dataclass
class EventEnvelope:
    kind: EventKind
    payload: JSONValue
    event_type: Optional[str] = None
    event_id: Optional[str] = None


def classify(event_type: Optional[str]) -> EventKind:
    if not event_type:
        return EventKind.UNKNOWN
    return EVENT_TYPE_TABLE.get(event_type.strip().lower(), EventKind.UNKNOWN)


def decode_payload(frame: SSEFrame) -> JSONValue:
    try:
        return JSONValue.parse(frame.data)
    except (ValueError, RecursionError) as exc:
        raise ParseError(
            f"Invalid JSON payload for event {frame.event_type!r}: {exc}", frame
        ) from exc


def decode_frame(frame: SSEFrame) -> Optional[EventEnvelope]:
    """
    Decode ``frame`` into an EventEnvelope.

    Returns None (skip) when the payload is not valid JSON; the failure is
    logged and the stream is expected to continue.
    """
    try:
        payload = decode_payload(frame)
    except ParseError as exc:
        log.warning(f"Skipping SSE frame: {exc}")
        return None

    return EventEnvelope(
        kind=classify(frame.event_type),
        payload=payload,
        event_type=frame.event_type,
        event_id=frame.id,
    )


__all__ = [
    "EVENT_TYPE_TABLE",
    "EventEnvelope",
    "EventKind",
    "ParseError",
    "classify",
    "decode_frame",
    "decode_payload",
]
