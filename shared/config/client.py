"""
Client configuration loader.

Resolution order:
- built-in defaults
- optional JSON document (shared/config/client.json, or UNHEARDPATH_CONFIG)
- environment variables (a local .env file is honoured via python-dotenv)

The JSON document is validated against CLIENT_CONFIG_SCHEMA before use.
Schema violations are fatal; individually malformed numbers fall back to
their defaults with a warning.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from jsonschema import Draft7Validator

from shared.logging.logger import get_logger

log = get_logger("shared.config.client")

_CONFIG_PATH = Path(__file__).parent / "client.json"

ENV_CONFIG_PATH = "UNHEARDPATH_CONFIG"
ENV_API_BASE_URL = "UNHEARDPATH_API_BASE_URL"
ENV_API_TOKEN = "UNHEARDPATH_API_TOKEN"
ENV_DEVICE_LANG = "UNHEARDPATH_DEVICE_LANG"
ENV_EVENT_STORE = "UNHEARDPATH_EVENT_STORE"


CLIENT_CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "api": {
            "type": "object",
            "properties": {
                "base_url": {"type": "string", "minLength": 1},
                "chat_endpoint": {"type": "string", "pattern": "^/"},
                "orchestrator_endpoint": {"type": "string", "pattern": "^/"},
                "token": {"type": ["string", "null"]},
                "connect_timeout_seconds": {"type": ["number", "string"]},
                "stream_read_timeout_seconds": {"type": ["number", "string"]},
            },
        },
        "session": {
            "type": "object",
            "properties": {
                "inactivity_timeout_minutes": {"type": ["integer", "string"]},
                "max_session_duration_minutes": {"type": ["integer", "string"]},
                "device_lang": {"type": "string", "minLength": 1},
            },
        },
        "storage": {
            "type": "object",
            "properties": {
                "event_store_path": {"type": "string", "minLength": 1},
            },
        },
    },
}


class ConfigError(Exception):
    """Raised when the client configuration document is invalid."""


@dataclass
class ApiConfig:
    base_url: str = "https://api.unheardpath.com"
    chat_endpoint: str = "/v1/chat"
    orchestrator_endpoint: str = "/v1/orchestor"
    token: Optional[str] = None
    connect_timeout_seconds: float = 10.0
    stream_read_timeout_seconds: float = 300.0


@dataclass
class SessionConfig:
    inactivity_timeout_minutes: int = 30
    max_session_duration_minutes: int = 240
    device_lang: str = "en"


@dataclass
class StorageConfig:
    event_store_path: str = "data/user_events.json"


@dataclass
class ClientConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.debug(f"client config not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"{path.name}: invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: root JSON value must be an object")
    return data


def _validate(raw: Dict[str, Any]) -> None:
    validator = Draft7Validator(CLIENT_CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(raw), key=lambda e: list(e.path))
    if errors:
        details = "; ".join(
            f"'{'/'.join(str(p) for p in err.path)}': {err.message}" for err in errors
        )
        raise ConfigError(f"client config invalid: {details}")


def _as_float(value: Any, default: float, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        log.warning(f"{name} must be numeric; defaulting to {default}")
        return default
    if result <= 0:
        log.warning(f"{name} must be positive; defaulting to {default}")
        return default
    return result


def _as_int(value: Any, default: int, name: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        log.warning(f"{name} must be an integer; defaulting to {default}")
        return default
    if result <= 0:
        log.warning(f"{name} must be positive; defaulting to {default}")
        return default
    return result


def _load_api(raw: Optional[Dict[str, Any]]) -> ApiConfig:
    if not isinstance(raw, dict):
        return ApiConfig()

    return ApiConfig(
        base_url=str(raw.get("base_url", ApiConfig.base_url)).rstrip("/"),
        chat_endpoint=str(raw.get("chat_endpoint", ApiConfig.chat_endpoint)),
        orchestrator_endpoint=str(
            raw.get("orchestrator_endpoint", ApiConfig.orchestrator_endpoint)
        ),
        token=raw.get("token") or None,
        connect_timeout_seconds=_as_float(
            raw.get("connect_timeout_seconds", ApiConfig.connect_timeout_seconds),
            ApiConfig.connect_timeout_seconds,
            "api.connect_timeout_seconds",
        ),
        stream_read_timeout_seconds=_as_float(
            raw.get("stream_read_timeout_seconds", ApiConfig.stream_read_timeout_seconds),
            ApiConfig.stream_read_timeout_seconds,
            "api.stream_read_timeout_seconds",
        ),
    )


def _load_session(raw: Optional[Dict[str, Any]]) -> SessionConfig:
    if not isinstance(raw, dict):
        return SessionConfig()

    return SessionConfig(
        inactivity_timeout_minutes=_as_int(
            raw.get("inactivity_timeout_minutes", SessionConfig.inactivity_timeout_minutes),
            SessionConfig.inactivity_timeout_minutes,
            "session.inactivity_timeout_minutes",
        ),
        max_session_duration_minutes=_as_int(
            raw.get("max_session_duration_minutes", SessionConfig.max_session_duration_minutes),
            SessionConfig.max_session_duration_minutes,
            "session.max_session_duration_minutes",
        ),
        device_lang=str(raw.get("device_lang", SessionConfig.device_lang)),
    )


def _load_storage(raw: Optional[Dict[str, Any]]) -> StorageConfig:
    if not isinstance(raw, dict):
        return StorageConfig()
    return StorageConfig(
        event_store_path=str(raw.get("event_store_path", StorageConfig.event_store_path))
    )


def _apply_env(config: ClientConfig, env: Mapping[str, str]) -> ClientConfig:
    base_url = env.get(ENV_API_BASE_URL)
    if base_url:
        config.api.base_url = base_url.strip().rstrip("/")

    token = env.get(ENV_API_TOKEN)
    if token:
        config.api.token = token.strip()

    device_lang = env.get(ENV_DEVICE_LANG)
    if device_lang:
        config.session.device_lang = device_lang.strip()

    store_path = env.get(ENV_EVENT_STORE)
    if store_path:
        config.storage.event_store_path = store_path.strip()

    return config


def load_client_config(
    raw: Optional[Dict[str, Any]] = None,
    *,
    path: Optional[Path | str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ClientConfig:
    """
    Build a ClientConfig.

    ``raw`` bypasses file loading (used by tests and embedding callers).
    ``env`` defaults to os.environ after loading a .env file.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    if raw is None:
        config_path = Path(path or env.get(ENV_CONFIG_PATH) or _CONFIG_PATH)
        raw = _load_json(config_path)

    _validate(raw)

    config = ClientConfig(
        api=_load_api(raw.get("api")),
        session=_load_session(raw.get("session")),
        storage=_load_storage(raw.get("storage")),
    )
    return _apply_env(config, env)


__all__ = [
    "ApiConfig",
    "ClientConfig",
    "ConfigError",
    "SessionConfig",
    "StorageConfig",
    "CLIENT_CONFIG_SCHEMA",
    "load_client_config",
]
