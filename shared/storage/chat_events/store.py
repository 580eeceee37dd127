"""User event storage backed by a single JSON document.

The store keeps the events of the current session plus archived past
sessions. A session rolls over when it has been idle for longer than the
inactivity timeout or has run past its maximum duration.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from shared.chat.events import CHAT_EVENT_TYPES, UserEvent
from shared.logging.logger import get_logger

log = get_logger("shared.chat_events.store")

DEFAULT_STORE_PATH = Path("data/user_events.json")
DEFAULT_INACTIVITY_TIMEOUT = timedelta(minutes=30)
DEFAULT_MAX_SESSION_DURATION = timedelta(minutes=240)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class SessionData:
    session_id: str
    events: List[UserEvent] = field(default_factory=list)
    started_at: Optional[str] = None
    last_activity_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "events": [event.to_dict() for event in self.events],
            "started_at": self.started_at,
            "last_activity_at": self.last_activity_at,
        }


class UserEventStore:
    def __init__(
        self,
        path: Path | str = DEFAULT_STORE_PATH,
        *,
        inactivity_timeout: timedelta = DEFAULT_INACTIVITY_TIMEOUT,
        max_session_duration: timedelta = DEFAULT_MAX_SESSION_DURATION,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._path = Path(path)
        self._inactivity_timeout = inactivity_timeout
        self._max_session_duration = max_session_duration
        self._clock = clock
        self._lock = threading.Lock()

        self.session_id: str = str(uuid.uuid4())
        self.session_started_at: Optional[datetime] = None
        self.last_activity_at: Optional[datetime] = None
        self._this_session: List[UserEvent] = []
        self._past_sessions: Dict[str, SessionData] = {}

        self._load()

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.warning(f"Failed to load user events from {self._path}: {exc}")
            return
        if not isinstance(payload, dict):
            log.warning(f"User event store root is not an object ({self._path}); ignoring")
            return

        session_id = payload.get("session_id")
        if isinstance(session_id, str) and session_id:
            self.session_id = session_id
        self.session_started_at = _parse_iso(payload.get("session_started_at"))
        self.last_activity_at = _parse_iso(payload.get("last_activity_at"))
        self._this_session = self._load_events(payload.get("this_session"))

        past = payload.get("past_sessions")
        if isinstance(past, dict):
            for sid, raw in past.items():
                if not isinstance(raw, dict):
                    continue
                self._past_sessions[str(sid)] = SessionData(
                    session_id=str(sid),
                    events=self._load_events(raw.get("events")),
                    started_at=raw.get("started_at"),
                    last_activity_at=raw.get("last_activity_at"),
                )

        log.debug(
            f"Loaded {len(self._this_session)} current and "
            f"{len(self._past_sessions)} archived session(s) from {self._path}"
        )

    @staticmethod
    def _load_events(raw: Any) -> List[UserEvent]:
        if not isinstance(raw, list):
            return []
        events: List[UserEvent] = []
        for entry in raw:
            try:
                events.append(UserEvent.from_dict(entry))
            except ValueError as exc:
                log.warning(f"Dropping malformed stored event: {exc}")
        return events

    def _save(self) -> None:
        payload = {
            "session_id": self.session_id,
            "session_started_at": _to_iso(self.session_started_at),
            "last_activity_at": _to_iso(self.last_activity_at),
            "this_session": [event.to_dict() for event in self._this_session],
            "past_sessions": {
                sid: data.to_dict() for sid, data in self._past_sessions.items()
            },
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            log.warning(f"Failed to save user events to {self._path}: {exc}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _session_expired(self, now: datetime) -> bool:
        if self.last_activity_at is None:
            return False
        idle = now - self.last_activity_at
        if idle > self._inactivity_timeout:
            log.debug(f"Session timeout: {int(idle.total_seconds() // 60)} minutes since last activity")
            return True
        if self.session_started_at is not None:
            duration = now - self.session_started_at
            if duration > self._max_session_duration:
                log.debug(f"Session max duration exceeded: {int(duration.total_seconds() // 60)} minutes")
                return True
        return False

    def _archive_locked(self) -> None:
        if not self._this_session:
            return
        archived = SessionData(
            session_id=self.session_id,
            events=list(self._this_session),
            started_at=_to_iso(self.session_started_at),
            last_activity_at=_to_iso(self.last_activity_at),
        )
        self._past_sessions[archived.session_id] = archived
        self._this_session = []
        self.session_id = str(uuid.uuid4())
        self.session_started_at = None
        self.last_activity_at = None
        log.info(f"Archived session {archived.session_id} with {len(archived.events)} events")

    def archive_session(self) -> None:
        with self._lock:
            self._archive_locked()
            self._save()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, event: UserEvent) -> UserEvent:
        """Record ``event`` in the current session and persist.

        Returns the stored event, stamped with the session id if it had none.
        """
        with self._lock:
            now = self._clock()
            if self._session_expired(now):
                self._archive_locked()

            stored = event if event.session_id else event.with_session(self.session_id)
            self._this_session.append(stored)

            if self.session_started_at is None:
                self.session_started_at = now
            self.last_activity_at = now

            self._save()
            return stored

    def this_session(self) -> List[UserEvent]:
        with self._lock:
            return list(self._this_session)

    def past_sessions(self) -> List[SessionData]:
        with self._lock:
            return list(self._past_sessions.values())

    def all_events(self) -> List[UserEvent]:
        with self._lock:
            events: List[UserEvent] = []
            for data in self._past_sessions.values():
                events.extend(data.events)
            events.extend(self._this_session)
            return events

    def chat_events_in_order(self) -> List[UserEvent]:
        chat_events = [e for e in self.all_events() if e.evt_type in CHAT_EVENT_TYPES]
        # stable: events sharing a timestamp keep their recorded order
        return sorted(chat_events, key=lambda e: _parse_iso(e.evt_utc) or datetime.min.replace(tzinfo=timezone.utc))


__all__ = [
    "SessionData",
    "UserEventStore",
    "DEFAULT_STORE_PATH",
]
