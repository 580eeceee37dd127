"""Conversation state machine driven by the chat event stream.

States: IDLE → AWAITING_STREAM → STREAMING → FINALIZING → IDLE

Content events carry the cumulative assistant text for the current turn, so
the streaming placeholder's text is replaced, never appended to.
"""

from __future__ import annotations

from dataclasses import replace
from typing import AsyncIterator, List, Optional, Protocol

from services.chat.models import ChatMessage, Conversation, ConversationState
from services.gateway.client import TransportError
from services.geo.normalizer import GeoFeatureNormalizer
from services.sse.router import EventRouter, UICallbacks, invoke_callback
from shared.chat.events import CHAT_RECEIVED, CHAT_SENT, UserEvent, create_chat_event
from shared.logging.logger import get_logger

log = get_logger("chat.engine")


class ConversationBusyError(Exception):
    """Raised when a message is sent while the previous turn is still draining."""


class PersistenceGateway(Protocol):
    async def add_event(self, event: UserEvent) -> Optional[AsyncIterator[str]]:
        ...

    def chat_events_in_order(self) -> List[UserEvent]:
        ...


class ChatConversationEngine:
    """
    Owns the Conversation and the EventRouter that feeds it.

    All mutation happens on the event loop task that calls send_message();
    a second send while a turn is in progress is rejected.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        normalizer: Optional[GeoFeatureNormalizer] = None,
        callbacks: Optional[UICallbacks] = None,
        *,
        device_lang: str = "en",
    ) -> None:
        self._gateway = gateway
        self._device_lang = device_lang or "en"
        self.normalizer = normalizer or GeoFeatureNormalizer()
        self.callbacks = callbacks or UICallbacks()
        self.conversation = Conversation()
        self.state = ConversationState.IDLE
        self._turn_in_progress = False
        self._router = EventRouter(self, self.normalizer, self.callbacks)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def router(self) -> EventRouter:
        return self._router

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self.conversation.messages)

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.conversation.last

    @property
    def busy(self) -> bool:
        return self._turn_in_progress

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def load_history(self) -> int:
        """Rebuild the transcript from persisted chat events.

        Call once at startup before the first send.
        """
        if self._turn_in_progress:
            raise ConversationBusyError("cannot load history while a turn is in progress")

        self.conversation = Conversation(
            messages=[
                ChatMessage(text=event.message, is_user=event.evt_type == CHAT_SENT)
                for event in self._gateway.chat_events_in_order()
            ]
        )
        log.info(f"Restored {len(self.conversation.messages)} chat message(s) from history")
        return len(self.conversation.messages)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> bool:
        """
        Send one user message and drain the assistant's reply stream.

        Returns False (and changes nothing) when the trimmed text is empty.
        Raises ConversationBusyError if a turn is already in progress and
        re-raises send and stream failures after cleaning up the placeholder.
        """
        text = (text or "").strip()
        if not text:
            log.debug("send_message: message is empty after trimming, not sending")
            return False
        if self._turn_in_progress:
            raise ConversationBusyError("a chat turn is already in progress")

        self._turn_in_progress = True
        invoke_callback(
            "on_text_field_focus_change", self.callbacks.on_text_field_focus_change, False
        )

        self.conversation.append(ChatMessage(text=text, is_user=True))
        self.conversation.append(ChatMessage(text="", is_user=False, is_streaming=True))
        self.conversation.last_persisted_received_message_id = None
        self.state = ConversationState.AWAITING_STREAM

        event = create_chat_event(
            evt_type=CHAT_SENT, message=text, device_lang=self._device_lang
        )

        try:
            stream = await self._gateway.add_event(event)
        except BaseException as e:
            log.error(f"Failed to send chat message: {e!r}")
            self.run_safety_net()
            self._turn_in_progress = False
            raise

        try:
            if stream is None:
                log.warning("send_message: no stream returned for chat_sent")
                self.run_safety_net()
            else:
                await self._router.drain(stream)
        except TransportError as e:
            log.error(f"Chat stream failed: {e}")
            raise
        finally:
            self.state = ConversationState.IDLE
            self._turn_in_progress = False

        return True

    # ------------------------------------------------------------------
    # Stream handlers (ChatSink)
    # ------------------------------------------------------------------

    def append_or_replace_streaming_text(self, text: str, is_streaming: bool = True) -> None:
        last = self.conversation.trailing_assistant()
        if last is not None and last.is_streaming:
            self.conversation.replace_last(
                replace(last, text=text, is_streaming=is_streaming)
            )
        else:
            self.conversation.append(
                ChatMessage(text=text, is_user=False, is_streaming=is_streaming)
            )
        self.state = ConversationState.STREAMING

    def finalize_streaming(self) -> Optional[ChatMessage]:
        """
        Close out the trailing assistant message.

        A still-streaming message is removed when its text is blank, otherwise
        its streaming flag is cleared. Calling this again is a no-op. Returns
        the trailing assistant message afterwards, if any.
        """
        last = self.conversation.trailing_assistant()
        if last is None:
            log.debug("finalize_streaming: no assistant message found")
            return None
        if not last.is_streaming:
            return last

        if not last.text.strip():
            self.conversation.remove_last()
            log.debug("finalize_streaming: removed empty streaming placeholder")
            return None

        finalized = replace(last, is_streaming=False)
        self.conversation.replace_last(finalized)
        log.debug("finalize_streaming: marked last assistant message as not streaming")
        return finalized

    async def complete_turn(self) -> None:
        """Handle a stop event: finalize, then persist the reply once."""
        self.state = ConversationState.FINALIZING
        message = self.finalize_streaming()
        if message is not None:
            await self._persist_received(message)
        self.state = ConversationState.IDLE

    def run_safety_net(self) -> None:
        """Finalize a reply whose stream ended without a stop event."""
        last = self.conversation.trailing_assistant()
        if last is not None and last.is_streaming:
            log.info("Stream ended without stop; finalizing assistant message")
            self.finalize_streaming()
        self.state = ConversationState.IDLE

    # ------------------------------------------------------------------

    async def _persist_received(self, message: ChatMessage) -> None:
        if self.conversation.last_persisted_received_message_id == message.id:
            log.debug(f"chat_received already persisted for {message.id}; skipping")
            return
        self.conversation.last_persisted_received_message_id = message.id

        event = create_chat_event(
            evt_type=CHAT_RECEIVED, message=message.text, device_lang=self._device_lang
        )
        try:
            await self._gateway.add_event(event)
        except (TransportError, OSError) as e:
            log.error(f"Failed to add chat_received event: {e}")


__all__ = [
    "ChatConversationEngine",
    "ConversationBusyError",
    "PersistenceGateway",
]
