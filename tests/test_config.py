import logging

import pytest
from pydantic import ValidationError

from api_mcp_agent.config import Settings, get_settings
from api_mcp_agent.logging import PROVIDER_LOGGERS, configure_logging, mask_secret, redact_payload, redact_text


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.temperature == 0.7
        assert settings.max_tokens == 32768
        assert settings.max_retries == 3
        assert settings.inter_call_delay == 0.5
        assert settings.monolithic_max_prompt_chars == 30000

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MCP_AGENT_MODEL", "gpt-4o")
        monkeypatch.setenv("mcp_agent_validate_model", "false")
        settings = Settings(_env_file=None)
        assert settings.model == "gpt-4o"
        assert settings.validate_model is False

    def test_rejects_out_of_range_temperature(self):
        with pytest.raises(ValidationError):
            Settings(temperature=3.0, _env_file=None)

    def test_rejects_zero_retries(self):
        with pytest.raises(ValidationError):
            Settings(max_retries=0, _env_file=None)

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestRedactPayload:
    def test_masks_credential_keys(self):
        payload = {"model": "m", "api_key": "sk-ant-0123456789", "nested": {"access_token": "t"}}
        assert redact_payload(payload) == {
            "model": "m",
            "api_key": "****6789",
            "nested": {"access_token": "****"},
        }

    def test_empty_secret_left_alone(self):
        assert redact_payload({"password": ""}) == {"password": ""}
        assert redact_payload({"api_key": None}) == {"api_key": None}

    def test_recurses_into_lists(self):
        payload = {
            "fallbacks": [{"model": "a", "api_key": "key-aaaa-1111"}, {"model": "b"}],
            "api_keys": ["short", "long-enough-2222"],
        }
        assert redact_payload(payload) == {
            "fallbacks": [{"model": "a", "api_key": "****1111"}, {"model": "b"}],
            "api_keys": ["****", "****2222"],
        }

    def test_authorization_header(self):
        headers = {"headers": {"Authorization": "Bearer abcdefghij"}}
        assert redact_payload(headers)["headers"]["Authorization"] == "****ghij"


class TestRedactText:
    def test_replaces_secret(self):
        text = "Incorrect API key provided: sk-live-0123456789abcd. Check your key."
        assert redact_text(text, "sk-live-0123456789abcd") == (
            "Incorrect API key provided: ****abcd. Check your key."
        )

    def test_no_secret(self):
        assert redact_text("boom", None) == "boom"
        assert redact_text("boom", "") == "boom"

    def test_mask_short_value(self):
        assert mask_secret("abc") == "****"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_levels(self):
        saved = {name: logging.getLogger(name).level for name in PROVIDER_LOGGERS}
        yield
        for name, level in saved.items():
            logging.getLogger(name).setLevel(level)

    def test_provider_loggers_quieted(self):
        configure_logging("debug")
        for name in PROVIDER_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_provider_loggers_follow_stricter_level(self):
        configure_logging("ERROR")
        assert logging.getLogger("LiteLLM").level == logging.ERROR
