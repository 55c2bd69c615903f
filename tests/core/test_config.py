# tests/core/test_config.py
"""
Tests for settings loading and validation.
"""

import json
import pytest
from datetime import timedelta

from sessionguard.core.config import Settings, load_settings
from sessionguard.core.exceptions import ConfigurationError


class TestDefaults:

    def test_defaults(self):
        settings = Settings()

        assert settings.SESSION_TTL_MS == 24 * 60 * 60 * 1000
        assert settings.SESSION_CLEANUP_INTERVAL_MS == 300000
        assert settings.SESSION_COOKIE_NAME == "sessionId"
        assert settings.RATE_LIMIT_WINDOW_MS == 15 * 60 * 1000
        assert settings.RATE_LIMIT_MAX_REQUESTS == 100
        assert settings.BRUTE_FORCE_MAX_ATTEMPTS == 5
        assert settings.BRUTE_FORCE_LOCKOUT_MS == 15 * 60 * 1000
        assert settings.SESSION_CREATE_MAX == 10
        assert settings.TRUST_PROXY_HEADERS is False

    def test_derived_values(self):
        settings = Settings(SESSION_TTL_MS=1500, SESSION_CLEANUP_INTERVAL_MS=2000, ENVIRONMENT="production")

        assert settings.session_ttl == timedelta(milliseconds=1500)
        assert settings.cleanup_interval_seconds == 2
        assert settings.is_production


class TestLoadSettings:

    def test_overrides_are_case_insensitive(self):
        settings = load_settings(session_ttl_ms=1000, BRUTE_FORCE_MAX_ATTEMPTS=2)

        assert settings.SESSION_TTL_MS == 1000
        assert settings.BRUTE_FORCE_MAX_ATTEMPTS == 2

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("SESSIONGUARD_SESSION_TTL_MS", "4242")

        assert load_settings().SESSION_TTL_MS == 4242

    def test_json_file(self, tmp_path):
        config_file = tmp_path / "security.json"
        config_file.write_text(json.dumps({"session_ttl_ms": 5000, "rate_limit_max_requests": 7}))

        settings = load_settings(config_file, rate_limit_max_requests=9)

        assert settings.SESSION_TTL_MS == 5000
        assert settings.RATE_LIMIT_MAX_REQUESTS == 9

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(tmp_path / "missing.json")

        assert "Failed to load configuration file" in str(exc_info.value)

    def test_file_must_hold_an_object(self, tmp_path):
        config_file = tmp_path / "security.json"
        config_file.write_text("[1, 2]")

        with pytest.raises(ConfigurationError):
            load_settings(config_file)

    @pytest.mark.parametrize("override", [
        {"session_ttl_ms": 0},
        {"session_cleanup_interval_ms": -1},
        {"rate_limit_max_requests": 0},
        {"brute_force_max_attempts": 0},
        {"environment": "staging"},
    ])
    def test_invalid_values(self, override):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(**override)

        assert exc_info.value.component == next(iter(override)).upper()
