"""
Unit tests for ChatConversationEngine.
"""

import asyncio

import pytest
from unittest.mock import Mock

from services.chat.engine import ChatConversationEngine, ConversationBusyError
from services.chat.models import ChatMessage, ConversationState
from services.gateway.client import TransportError
from services.sse.router import UICallbacks
from shared.chat.events import CHAT_RECEIVED, CHAT_SENT, create_chat_event
from streams import FakeGateway, async_lines, sse_block, sse_lines


def _reply(*texts, stop=True):
    blocks = [sse_block("content", {"content": t, "is_streaming": True}) for t in texts]
    if stop:
        blocks.append(sse_block("stop"))
    return async_lines(sse_lines(*blocks))


class TestSendMessage:
    """A full turn against a scripted stream."""

    @pytest.mark.asyncio
    async def test_cumulative_content_then_stop(self):
        gateway = FakeGateway(streams=[_reply("Hi", "Hi there")])
        engine = ChatConversationEngine(gateway)

        sent = await engine.send_message("Hello")

        assert sent is True
        assert [(m.text, m.is_user, m.is_streaming) for m in engine.messages] == [
            ("Hello", True, False),
            ("Hi there", False, False),
        ]
        assert [e.message for e in gateway.events_of_type(CHAT_SENT)] == ["Hello"]
        assert [e.message for e in gateway.events_of_type(CHAT_RECEIVED)] == ["Hi there"]
        assert engine.state == ConversationState.IDLE
        assert not engine.busy

    @pytest.mark.asyncio
    async def test_message_is_trimmed_before_sending(self):
        gateway = FakeGateway(streams=[_reply("ok")])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("  Where am I?  \n")

        assert engine.messages[0].text == "Where am I?"
        assert gateway.events_of_type(CHAT_SENT)[0].message == "Where am I?"

    @pytest.mark.asyncio
    async def test_empty_message_is_a_no_op(self):
        gateway = FakeGateway()
        engine = ChatConversationEngine(gateway)

        assert await engine.send_message("   ") is False

        assert engine.messages == []
        assert gateway.events == []

    @pytest.mark.asyncio
    async def test_focus_is_released_on_send(self):
        focus = Mock()
        engine = ChatConversationEngine(
            FakeGateway(streams=[_reply("ok")]),
            callbacks=UICallbacks(on_text_field_focus_change=focus),
        )

        await engine.send_message("Hello")

        focus.assert_called_once_with(False)

    @pytest.mark.asyncio
    async def test_transport_failure_removes_placeholder_and_reraises(self):
        gateway = FakeGateway(streams=[async_lines([], error=TransportError("connection reset"))])
        engine = ChatConversationEngine(gateway)

        with pytest.raises(TransportError):
            await engine.send_message("Hello")

        assert [(m.text, m.is_user) for m in engine.messages] == [("Hello", True)]
        assert engine.state == ConversationState.IDLE
        assert not engine.busy
        assert gateway.events_of_type(CHAT_RECEIVED) == []

    @pytest.mark.asyncio
    async def test_send_error_before_stream_cleans_up(self):
        gateway = FakeGateway(send_error=TransportError("HTTP 500", status_code=500))
        engine = ChatConversationEngine(gateway)

        with pytest.raises(TransportError):
            await engine.send_message("Hello")

        assert [m.text for m in engine.messages] == ["Hello"]
        assert not engine.busy

        # the engine accepts the next turn after a failure
        gateway.send_error = None
        gateway.streams.append(_reply("back"))
        await engine.send_message("Again")
        assert engine.last_message.text == "back"

    @pytest.mark.asyncio
    async def test_store_failure_on_send_leaves_engine_ready_for_retry(self):
        gateway = FakeGateway(send_error=OSError("disk full"))
        engine = ChatConversationEngine(gateway)

        with pytest.raises(OSError):
            await engine.send_message("Hello")

        assert [(m.text, m.is_user, m.is_streaming) for m in engine.messages] == [
            ("Hello", True, False),
        ]
        assert engine.state == ConversationState.IDLE
        assert not engine.busy

        gateway.send_error = None
        gateway.streams.append(_reply("Retried"))
        assert await engine.send_message("Hello again") is True
        assert engine.last_message.text == "Retried"

    @pytest.mark.asyncio
    async def test_content_without_text_keeps_accumulated_reply(self):
        lines = sse_lines(
            sse_block("content", {"content": "Hi there"}),
            sse_block("content", {"is_streaming": False}),
            sse_block("stop"),
        )
        gateway = FakeGateway(streams=[async_lines(lines)])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("Hello")

        assert [(m.text, m.is_user) for m in engine.messages] == [
            ("Hello", True),
            ("Hi there", False),
        ]
        assert [e.message for e in gateway.events_of_type(CHAT_RECEIVED)] == ["Hi there"]

    @pytest.mark.asyncio
    async def test_oversized_payload_is_skipped_and_turn_completes(self):
        lines = sse_lines(
            sse_block("toast", '{"message": ' + "[" * 100000 + "}"),
            sse_block("content", {"content": "after"}),
            sse_block("stop"),
        )
        gateway = FakeGateway(streams=[async_lines(lines)])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("Hello")

        assert engine.last_message.text == "after"
        assert [e.message for e in gateway.events_of_type(CHAT_RECEIVED)] == ["after"]

    @pytest.mark.asyncio
    async def test_missing_stream_removes_placeholder(self):
        engine = ChatConversationEngine(FakeGateway())

        assert await engine.send_message("Hello") is True

        assert [m.text for m in engine.messages] == ["Hello"]
        assert engine.state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_second_send_while_draining_is_rejected(self):
        gate = asyncio.Event()
        release = asyncio.Event()

        async def slow_stream():
            for line in sse_block("content", {"content": "thinking"}):
                yield line
            gate.set()
            await release.wait()
            for line in sse_block("stop"):
                yield line

        gateway = FakeGateway(streams=[slow_stream()])
        engine = ChatConversationEngine(gateway)

        first = asyncio.create_task(engine.send_message("One"))
        await gate.wait()

        assert engine.busy
        with pytest.raises(ConversationBusyError):
            await engine.send_message("Two")

        release.set()
        await first

        assert [m.text for m in engine.messages] == ["One", "thinking"]
        assert len(gateway.events_of_type(CHAT_SENT)) == 1


class TestStreamEnd:
    """Finalization and persistence at end of turn."""

    @pytest.mark.asyncio
    async def test_stream_without_stop_is_finalized_but_not_persisted(self):
        gateway = FakeGateway(streams=[_reply("partial answer", stop=False)])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("Hello")

        last = engine.last_message
        assert last.text == "partial answer"
        assert last.is_streaming is False
        assert gateway.events_of_type(CHAT_RECEIVED) == []

    @pytest.mark.asyncio
    async def test_duplicate_stop_persists_once(self):
        lines = sse_lines(
            sse_block("content", {"content": "Done"}),
            sse_block("stop"),
            sse_block("stop"),
        )
        gateway = FakeGateway(streams=[async_lines(lines)])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("Hello")

        assert [e.message for e in gateway.events_of_type(CHAT_RECEIVED)] == ["Done"]

    @pytest.mark.asyncio
    async def test_stop_with_no_content_drops_placeholder(self):
        gateway = FakeGateway(streams=[async_lines(sse_block("stop"))])
        engine = ChatConversationEngine(gateway)

        await engine.send_message("Hello")

        assert [m.text for m in engine.messages] == ["Hello"]
        assert gateway.events_of_type(CHAT_RECEIVED) == []

    @pytest.mark.asyncio
    async def test_content_after_stop_starts_new_message(self):
        lines = sse_lines(
            sse_block("content", {"content": "First"}),
            sse_block("stop"),
            sse_block("content", {"content": "Second"}),
        )
        engine = ChatConversationEngine(FakeGateway(streams=[async_lines(lines)]))

        await engine.send_message("Hello")

        assert [(m.text, m.is_streaming) for m in engine.messages] == [
            ("Hello", False),
            ("First", False),
            ("Second", False),
        ]

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_message(self):
        class FailingReceived(FakeGateway):
            async def add_event(self, event):
                if event.evt_type == CHAT_RECEIVED:
                    raise TransportError("store offline")
                return await super().add_event(event)

        engine = ChatConversationEngine(FailingReceived(streams=[_reply("Kept")]))

        await engine.send_message("Hello")

        assert engine.last_message.text == "Kept"
        assert engine.last_message.is_streaming is False


class TestFinalizeStreaming:
    """Direct calls on the sink surface."""

    def test_finalize_is_idempotent(self):
        engine = ChatConversationEngine(FakeGateway())
        engine.append_or_replace_streaming_text("Answer")

        first = engine.finalize_streaming()
        snapshot = engine.messages
        second = engine.finalize_streaming()

        assert first.text == "Answer" and first.is_streaming is False
        assert second == first
        assert engine.messages == snapshot

    def test_finalize_without_assistant_message(self):
        engine = ChatConversationEngine(FakeGateway())
        engine.conversation.append(ChatMessage(text="Hello", is_user=True))

        assert engine.finalize_streaming() is None
        assert len(engine.messages) == 1

    def test_content_replaces_streaming_text(self):
        engine = ChatConversationEngine(FakeGateway())

        engine.append_or_replace_streaming_text("H")
        engine.append_or_replace_streaming_text("He")
        engine.append_or_replace_streaming_text("Hey")

        assert [m.text for m in engine.messages] == ["Hey"]
        assert engine.state == ConversationState.STREAMING

    def test_non_streaming_content_closes_message(self):
        engine = ChatConversationEngine(FakeGateway())

        engine.append_or_replace_streaming_text("Final", is_streaming=False)
        engine.append_or_replace_streaming_text("Next")

        assert [(m.text, m.is_streaming) for m in engine.messages] == [
            ("Final", False),
            ("Next", True),
        ]


class TestLoadHistory:
    """Restoring a transcript from persisted events."""

    def test_history_maps_event_types_to_sides(self):
        history = [
            create_chat_event(evt_type=CHAT_SENT, message="Hello"),
            create_chat_event(evt_type=CHAT_RECEIVED, message="Hi there"),
        ]
        engine = ChatConversationEngine(FakeGateway(history=history))

        restored = engine.load_history()

        assert restored == 2
        assert [(m.text, m.is_user, m.is_streaming) for m in engine.messages] == [
            ("Hello", True, False),
            ("Hi there", False, False),
        ]
