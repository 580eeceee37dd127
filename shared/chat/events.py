"""Canonical user event schema and helpers.

User events are what the client records locally and posts to the backend:
a typed envelope around a free-form ``evt_data`` mapping.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

CHAT_SENT = "chat_sent"
CHAT_RECEIVED = "chat_received"
LOCATION_DETECTED = "location_detected"
LOCATION_SEARCHED = "location_searched"

SUPPORTED_EVENT_TYPES = {
    CHAT_SENT,
    CHAT_RECEIVED,
    LOCATION_DETECTED,
    LOCATION_SEARCHED,
}

CHAT_EVENT_TYPES = {CHAT_SENT, CHAT_RECEIVED}

LOCALTIME_PATH = Path("/etc/localtime")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _zone_key(candidate: str) -> Optional[str]:
    try:
        return ZoneInfo(candidate).key
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def _local_timezone_name() -> Optional[str]:
    """IANA key of the local zone (e.g. ``Europe/Istanbul``), or None.

    Checks ``TZ`` first, then the target of the /etc/localtime symlink.
    """
    from_env = os.environ.get("TZ", "").strip().lstrip(":")
    if from_env:
        key = _zone_key(from_env)
        if key:
            return key

    try:
        target = str(LOCALTIME_PATH.resolve()) if LOCALTIME_PATH.is_symlink() else ""
    except OSError:
        target = ""
    _, sep, candidate = target.rpartition("zoneinfo/")
    if sep and candidate:
        return _zone_key(candidate)
    return None


def normalize_event_type(value: str) -> str:
    evt_type = (value or "").lower().strip()
    if evt_type not in SUPPORTED_EVENT_TYPES:
        raise ValueError(f"Unsupported evt_type: {value}")
    return evt_type


@dataclass
class UserEvent:
    evt_utc: str
    evt_type: str
    evt_data: Dict[str, Any] = field(default_factory=dict)
    evt_timezone: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def message(self) -> str:
        text = self.evt_data.get("message")
        return text if isinstance(text, str) else ""

    def with_session(self, session_id: str) -> "UserEvent":
        return replace(self, session_id=session_id)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "evt_utc": self.evt_utc,
            "evt_type": self.evt_type,
            "evt_data": dict(self.evt_data),
        }
        if self.evt_timezone is not None:
            payload["evt_timezone"] = self.evt_timezone
        if self.session_id is not None:
            payload["session_id"] = self.session_id
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UserEvent":
        if not isinstance(raw, dict):
            raise ValueError("user event must be an object")
        evt_type = raw.get("evt_type")
        if not isinstance(evt_type, str) or not evt_type:
            raise ValueError("evt_type is required")
        evt_data = raw.get("evt_data")
        return cls(
            evt_utc=str(raw.get("evt_utc") or _utc_now_iso()),
            evt_type=evt_type,
            evt_data=dict(evt_data) if isinstance(evt_data, dict) else {},
            evt_timezone=raw.get("evt_timezone"),
            session_id=raw.get("session_id"),
        )


def create_user_event(
    *,
    evt_type: str,
    evt_data: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    evt_utc: Optional[str] = None,
    evt_timezone: Optional[str] = None,
) -> UserEvent:
    return UserEvent(
        evt_utc=evt_utc or _utc_now_iso(),
        evt_type=normalize_event_type(evt_type),
        evt_data=dict(evt_data or {}),
        evt_timezone=evt_timezone or _local_timezone_name(),
        session_id=session_id,
    )


def create_chat_event(
    *,
    evt_type: str,
    message: str,
    device_lang: str = "en",
    session_id: Optional[str] = None,
) -> UserEvent:
    if evt_type not in CHAT_EVENT_TYPES:
        raise ValueError(f"Not a chat event type: {evt_type}")
    return create_user_event(
        evt_type=evt_type,
        evt_data={"message": str(message), "device_lang": device_lang or "en"},
        session_id=session_id,
    )


__all__ = [
    "CHAT_SENT",
    "CHAT_RECEIVED",
    "LOCATION_DETECTED",
    "LOCATION_SEARCHED",
    "SUPPORTED_EVENT_TYPES",
    "CHAT_EVENT_TYPES",
    "UserEvent",
    "create_user_event",
    "create_chat_event",
    "normalize_event_type",
]
