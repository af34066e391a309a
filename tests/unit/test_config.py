import logging

import pytest
from pydantic import ValidationError

from src.config import RetryPolicySettings, Settings, configure_logging
from src.models.subscription import RetryPolicy


class TestSettings:
    """Tests for environment-driven configuration."""

    @pytest.mark.unit
    def test_defaults(self, monkeypatch):
        for key in ("WEBHOOK_REQUEST_TIMEOUT_SECONDS", "WEBHOOK_SUCCESS_ON_ANY_RESPONSE"):
            monkeypatch.delenv(key, raising=False)
        settings = Settings(_env_file=None)

        assert settings.request_timeout_seconds == 30.0
        assert settings.success_on_any_response is False
        assert settings.block_private_hosts is True
        assert settings.max_concurrent_deliveries == 1
        assert settings.default_retry_policy.to_policy() == RetryPolicy()

    @pytest.mark.unit
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_REQUEST_TIMEOUT_SECONDS", "10")
        monkeypatch.setenv("WEBHOOK_SUCCESS_ON_ANY_RESPONSE", "true")
        monkeypatch.setenv("WEBHOOK_DEFAULT_RETRY_POLICY__MAX_RETRIES", "5")

        settings = Settings(_env_file=None)

        assert settings.request_timeout_seconds == 10.0
        assert settings.success_on_any_response is True
        assert settings.default_retry_policy.max_retries == 5

    @pytest.mark.unit
    def test_invalid_retry_policy_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicySettings(base_delay_ms=5000, max_delay_ms=1000)
        with pytest.raises(ValidationError):
            RetryPolicySettings(backoff_multiplier=1.0)

    @pytest.mark.unit
    def test_invalid_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, request_timeout_seconds=0)

    @pytest.mark.unit
    def test_configure_logging_sets_root_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging(Settings(_env_file=None, log_level="debug"))
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)
