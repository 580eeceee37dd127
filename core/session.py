"""
Explicit wiring of one chat session.

config → httpx client → event store → gateway → normalizer → engine

Nothing here is global; embedders construct a ChatSession and pass in their
own UI callbacks (and optionally a shared httpx.AsyncClient).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import httpx

from services.chat.engine import ChatConversationEngine
from services.chat.models import ChatMessage
from services.gateway.client import BackendStreamClient
from services.gateway.event_gateway import EventGateway
from services.geo.normalizer import GeoFeatureNormalizer
from services.sse.router import UICallbacks
from shared.config.client import ClientConfig
from shared.logging.logger import get_logger
from shared.storage.chat_events import UserEventStore

log = get_logger("core.session")


class ChatSession:
    def __init__(
        self,
        config: ClientConfig,
        *,
        callbacks: Optional[UICallbacks] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        store: Optional[UserEventStore] = None,
    ) -> None:
        self.config = config
        self.store = store or UserEventStore(
            config.storage.event_store_path,
            inactivity_timeout=timedelta(minutes=config.session.inactivity_timeout_minutes),
            max_session_duration=timedelta(minutes=config.session.max_session_duration_minutes),
        )
        self.client = BackendStreamClient(config.api, client=http_client)
        self.gateway = EventGateway(self.store, self.client, config.api)
        self.features = GeoFeatureNormalizer()
        self.engine = ChatConversationEngine(
            self.gateway,
            self.features,
            callbacks,
            device_lang=config.session.device_lang,
        )

    def restore(self) -> int:
        return self.engine.load_history()

    async def send(self, text: str) -> Optional[ChatMessage]:
        """Send ``text``; return the finalized assistant reply, if one arrived."""
        if not await self.engine.send_message(text):
            return None
        return self.engine.conversation.trailing_assistant()

    async def aclose(self) -> None:
        await self.client.aclose()
        log.debug("Chat session closed")

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["ChatSession"]
