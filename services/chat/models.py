from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_STREAM = "awaiting_stream"
    STREAMING = "streaming"
    FINALIZING = "finalizing"


@dataclass
class ChatMessage:
    text: str
    is_user: bool
    is_streaming: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class Conversation:
    """
    Ordered chat transcript.

    Invariants:
    - at most the trailing non-user message has is_streaming=True
    - only the last element is ever replaced or removed
    """

    messages: List[ChatMessage] = field(default_factory=list)
    last_persisted_received_message_id: Optional[uuid.UUID] = None

    @property
    def last(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    def trailing_assistant(self) -> Optional[ChatMessage]:
        last = self.last
        if last is None or last.is_user:
            return None
        return last

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)

    def replace_last(self, message: ChatMessage) -> None:
        self.messages[-1] = message

    def remove_last(self) -> ChatMessage:
        return self.messages.pop()


__all__ = ["ChatMessage", "Conversation", "ConversationState"]
