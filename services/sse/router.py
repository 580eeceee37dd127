"""Ordered dispatch of decoded stream events.

The router is the single consumer of one SSE stream. Each envelope is fully
handled, awaited persistence included, before the next frame is pulled, so
downstream state changes happen strictly in wire order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Optional, Protocol

from services.geo.normalizer import GeoFeatureNormalizer, InvalidShapeError
from services.sse.decoder import EventEnvelope, EventKind, decode_frame
from services.sse.parser import iter_frames
from shared.chat.json_value import JSONKind
from shared.logging.logger import get_logger

log = get_logger("sse.router")

SHOW_INFO_SHEET_COMMAND = "show info sheet"


class ChatSink(Protocol):
    """The narrow slice of the conversation engine the router drives."""

    def append_or_replace_streaming_text(self, text: str, is_streaming: bool = True) -> None:
        ...

    async def complete_turn(self) -> None:
        ...

    def run_safety_net(self) -> None:
        ...


@dataclass
class Toast:
    message: str
    variant: str = "info"


@dataclass
class UICallbacks:
    on_toast: Optional[Callable[[Toast], None]] = None
    on_dismiss_keyboard: Optional[Callable[[], None]] = None
    on_show_info_sheet: Optional[Callable[[], None]] = None
    on_text_field_focus_change: Optional[Callable[[bool], None]] = None


def invoke_callback(name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        log.warning(f"UI callback '{name}' error ignored: {e}")


class EventRouter:
    """
    Routes envelopes to the chat sink, the feature normalizer and UI callbacks.

    Dispatch:
    - content      → sink.append_or_replace_streaming_text
    - notification → on_toast
    - stop         → sink.complete_turn (finalize + persistence)
    - map          → normalizer.apply, then on_dismiss_keyboard
    - interface    → on_show_info_sheet for "show info sheet"
    - unknown      → logged, ignored
    """

    def __init__(
        self,
        sink: ChatSink,
        normalizer: GeoFeatureNormalizer,
        callbacks: Optional[UICallbacks] = None,
    ) -> None:
        self._sink = sink
        self._normalizer = normalizer
        self.callbacks = callbacks or UICallbacks()

    # ------------------------------------------------------------------

    async def route(self, envelope: EventEnvelope) -> None:
        payload = envelope.payload

        if envelope.kind == EventKind.CONTENT:
            content = payload.get("content")
            if content.kind != JSONKind.STRING:
                log.warning(f"Ignoring content event without a content string ({content.kind.value})")
                return
            is_streaming = payload.get("is_streaming").as_bool(default=True)
            self._sink.append_or_replace_streaming_text(content.value, is_streaming)

        elif envelope.kind == EventKind.NOTIFICATION:
            toast = Toast(
                message=payload.get("message").as_str(),
                variant=payload.get("type").as_str() or "info",
            )
            log.debug(f"Routing toast ({toast.variant})")
            invoke_callback("on_toast", self.callbacks.on_toast, toast)

        elif envelope.kind == EventKind.STOP:
            log.debug("Routing stop to conversation engine")
            await self._sink.complete_turn()

        elif envelope.kind == EventKind.MAP:
            try:
                count = self._normalizer.apply(payload.to_python())
            except InvalidShapeError as e:
                log.warning(f"Ignoring map event with unusable payload: {e}")
                return
            invoke_callback("on_dismiss_keyboard", self.callbacks.on_dismiss_keyboard)
            log.debug(f"Routed map with {count} features")

        elif envelope.kind == EventKind.INTERFACE:
            action = payload.get("message").as_str() or payload.get("action").as_str()
            log.debug(f"Routing hook action: {action!r}")
            if action.strip().lower() == SHOW_INFO_SHEET_COMMAND:
                invoke_callback("on_show_info_sheet", self.callbacks.on_show_info_sheet)
            else:
                log.info(f"Unrecognized interface command ignored: {action!r}")

        else:
            log.debug(f"Unknown event type ignored: {envelope.event_type!r}")

    # ------------------------------------------------------------------

    async def drain(self, lines: AsyncIterable[str]) -> int:
        """
        Consume one SSE line stream to completion.

        Returns the number of envelopes routed. Transport errors and
        cancellation propagate; in every case the sink's safety net runs
        exactly once before this coroutine exits.
        """
        routed = 0
        try:
            async for frame in iter_frames(lines):
                envelope = decode_frame(frame)
                if envelope is None:
                    continue
                await self.route(envelope)
                routed += 1
        except asyncio.CancelledError:
            log.info(f"Stream drain cancelled after {routed} event(s)")
            raise
        finally:
            self._sink.run_safety_net()

        log.debug(f"Stream drained ({routed} event(s))")
        return routed


__all__ = [
    "ChatSink",
    "EventRouter",
    "SHOW_INFO_SHEET_COMMAND",
    "Toast",
    "UICallbacks",
    "invoke_callback",
]
