"""Settings validation and structured log redaction."""

import json
import logging

import pytest

from studio_agent.config.settings import Settings
from studio_agent.core.logging import StructuredFormatter, bind_session_id, redact_sensitive_data, request_context


class TestSettings:
    def test_test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "test")
        monkeypatch.delenv("DEV_IDENTITY_FALLBACK", raising=False)
        settings = Settings(_env_file=None)

        assert settings.is_test
        assert settings.should_create_tables is True
        assert settings.use_dev_identity is False
        assert settings.confirmation_ttl_seconds == 900
        assert settings.tools_max_calls_per_request == 10

    def test_development_enables_dev_identity(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.delenv("DEV_IDENTITY_FALLBACK", raising=False)
        assert Settings(_env_file=None).use_dev_identity is True

    def test_production_rejects_mock_provider(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("PROVIDER_MODE", "mock")
        monkeypatch.setenv("DEV_IDENTITY_FALLBACK", "false")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_production_rejects_dev_identity(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("PROVIDER_MODE", "openai_compat")
        monkeypatch.setenv("DEV_IDENTITY_FALLBACK", "true")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    @pytest.mark.parametrize(
        "name, value",
        [
            ("LOG_LEVEL", "LOUD"),
            ("PROVIDER_MODE", "carrier_pigeon"),
            ("SHADOW_ARGUMENT_THRESHOLD", "1.5"),
            ("TOOL_TIMEOUT_SECONDS", "0"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_cors_origins_list(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,")
        assert Settings(_env_file=None).cors_origins_list == ["http://a.test", "http://b.test"]


@pytest.mark.security
class TestRedaction:
    def test_confirmation_token_redacted(self):
        data = {"confirmationToken": "cnf_abcdefghijklmnopqrstuvwxyz"}
        result = redact_sensitive_data(data)
        assert result["confirmationToken"] == "cnf***xyz"

    def test_short_secret_fully_masked(self):
        assert redact_sensitive_data({"api_key": "short"}) == {"api_key": "<REDACTED>"}

    def test_nested_lists(self):
        data = {"calls": [{"authorization": "Bearer 123456789012345"}, {"tool": "send_email"}]}
        result = redact_sensitive_data(data)
        assert "123456789012" not in result["calls"][0]["authorization"]
        assert result["calls"][1] == {"tool": "send_email"}


def test_structured_formatter_includes_session_id():
    token = request_context.set({"request_id": "req-1", "path": "/agent/v2/chat"})
    try:
        bind_session_id("sess_abc")
        record = logging.LogRecord("studio_agent.test", logging.INFO, __file__, 1, "Turn state: DONE", None, None)
        record.data = {"token": "cnf_abcdefghijklmnop"}
        payload = json.loads(StructuredFormatter().format(record))
    finally:
        request_context.reset(token)

    assert payload["request_id"] == "req-1"
    assert payload["session_id"] == "sess_abc"
    assert payload["data"]["token"] == "cnf***nop"
