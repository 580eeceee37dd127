"""User event storage: current session plus archived sessions on disk."""

from shared.storage.chat_events.store import DEFAULT_STORE_PATH, SessionData, UserEventStore

__all__ = ["DEFAULT_STORE_PATH", "SessionData", "UserEventStore"]
