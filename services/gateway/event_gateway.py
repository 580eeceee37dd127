"""Persistence gateway: record user events locally, forward the ones the
backend answers with a stream.

- chat_sent                            → persisted, POSTed to the chat endpoint
- location_detected / location_searched → persisted, POSTed to the orchestrator
- chat_received                        → persisted only (the backend has its own)
"""

from __future__ import annotations

from typing import AsyncIterator, List, Optional

from services.gateway.client import BackendStreamClient
from shared.chat.events import (
    CHAT_SENT,
    LOCATION_DETECTED,
    LOCATION_SEARCHED,
    UserEvent,
)
from shared.config.client import ApiConfig
from shared.logging.logger import get_logger
from shared.storage.chat_events import UserEventStore

log = get_logger("gateway.events")


class EventGateway:
    def __init__(
        self,
        store: UserEventStore,
        client: Optional[BackendStreamClient],
        api: Optional[ApiConfig] = None,
    ) -> None:
        self._store = store
        self._client = client
        self._api = api or ApiConfig()

    @property
    def session_id(self) -> str:
        return self._store.session_id

    def _endpoint_for(self, evt_type: str) -> Optional[str]:
        if evt_type == CHAT_SENT:
            return self._api.chat_endpoint
        if evt_type in (LOCATION_DETECTED, LOCATION_SEARCHED):
            return self._api.orchestrator_endpoint
        return None

    async def add_event(self, event: UserEvent) -> Optional[AsyncIterator[str]]:
        """
        Persist ``event`` and, when the backend handles its type, return the
        SSE line stream to drain. Returns None for persist-only events.
        """
        stored = self._store.append(event)
        log.debug(f"Recorded {stored.evt_type} event (session={stored.session_id})")

        endpoint = self._endpoint_for(stored.evt_type)
        if endpoint is None:
            return None
        if self._client is None:
            log.warning(f"Cannot send {stored.evt_type}: no backend client configured")
            return None

        return self._client.stream_user_event(endpoint, stored.to_dict())

    def chat_events_in_order(self) -> List[UserEvent]:
        return self._store.chat_events_in_order()


__all__ = ["EventGateway"]
