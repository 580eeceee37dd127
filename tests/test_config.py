"""
Unit tests for client configuration loading.
"""

import json

import pytest

from shared.config.client import ClientConfig, ConfigError, load_client_config


class TestDefaults:
    """No document, no environment."""

    def test_empty_document_gives_defaults(self):
        config = load_client_config({}, env={})

        assert config == ClientConfig()
        assert config.api.chat_endpoint == "/v1/chat"
        assert config.api.orchestrator_endpoint == "/v1/orchestor"
        assert config.session.inactivity_timeout_minutes == 30
        assert config.session.max_session_duration_minutes == 240

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_client_config(path=tmp_path / "absent.json", env={})

        assert config == ClientConfig()


class TestDocument:
    """Values from the JSON document."""

    def test_file_values_are_used(self, tmp_path):
        path = tmp_path / "client.json"
        path.write_text(
            json.dumps(
                {
                    "api": {"base_url": "https://staging.example.com/", "stream_read_timeout_seconds": 60},
                    "session": {"inactivity_timeout_minutes": "15", "device_lang": "tr"},
                    "storage": {"event_store_path": "/tmp/events.json"},
                }
            ),
            encoding="utf-8",
        )

        config = load_client_config(path=path, env={})

        assert config.api.base_url == "https://staging.example.com"
        assert config.api.stream_read_timeout_seconds == 60.0
        assert config.session.inactivity_timeout_minutes == 15
        assert config.session.device_lang == "tr"
        assert config.storage.event_store_path == "/tmp/events.json"

    def test_config_path_from_environment(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"session": {"device_lang": "de"}}), encoding="utf-8")

        config = load_client_config(env={"UNHEARDPATH_CONFIG": str(path)})

        assert config.session.device_lang == "de"

    def test_invalid_json_file_raises(self, tmp_path):
        path = tmp_path / "client.json"
        path.write_text("{nope", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_client_config(path=path, env={})

    @pytest.mark.parametrize(
        "raw",
        [
            {"api": {"chat_endpoint": "v1/chat"}},
            {"api": {"base_url": ""}},
            {"session": "fast"},
            {"storage": {"event_store_path": 12}},
        ],
    )
    def test_schema_violations_raise(self, raw):
        with pytest.raises(ConfigError):
            load_client_config(raw, env={})

    @pytest.mark.parametrize(
        "raw",
        [
            {"api": {"connect_timeout_seconds": "soon"}},
            {"api": {"connect_timeout_seconds": -1}},
        ],
    )
    def test_bad_numbers_fall_back_to_default(self, raw):
        config = load_client_config(raw, env={})

        assert config.api.connect_timeout_seconds == 10.0

    def test_bad_session_minutes_fall_back(self):
        config = load_client_config({"session": {"max_session_duration_minutes": "forever"}}, env={})

        assert config.session.max_session_duration_minutes == 240


class TestEnvironmentOverrides:
    """Environment variables win over the document."""

    def test_overrides(self):
        env = {
            "UNHEARDPATH_API_BASE_URL": " http://localhost:8000/ ",
            "UNHEARDPATH_API_TOKEN": "secret",
            "UNHEARDPATH_DEVICE_LANG": "fr",
            "UNHEARDPATH_EVENT_STORE": "events.json",
        }

        config = load_client_config({"api": {"base_url": "https://ignored.example.com"}}, env=env)

        assert config.api.base_url == "http://localhost:8000"
        assert config.api.token == "secret"
        assert config.session.device_lang == "fr"
        assert config.storage.event_store_path == "events.json"

    def test_blank_overrides_are_ignored(self):
        config = load_client_config({}, env={"UNHEARDPATH_API_TOKEN": ""})

        assert config.api.token is None
