"""Unit tests for CommunicationConfig."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from webview_comm.config import CommunicationConfig

# Test constants
DEFAULT_ACK_BUDGET_MS = 5000


class TestDefaults:
    """Default values follow the documented configuration surface."""

    def test_defaults(self):
        """Test default timeouts, retry budget and cadences."""
        config = CommunicationConfig()

        assert config.ack_timeout_ms == 2000
        assert config.response_timeout_ms == 10000
        assert config.max_retries == 3
        assert config.retry_delay_ms == 1000
        assert config.heartbeat_interval_ms == 30000
        assert config.sync_interval_ms == 60000
        assert config.missed_pong_threshold == 3
        assert config.sync_command == "requestSync"
        assert config.validate_payloads is True

    def test_seconds_properties(self):
        """Test millisecond to second conversion."""
        config = CommunicationConfig(ack_timeout_ms=1500)
        assert config.ack_timeout_seconds == 1.5
        assert config.response_timeout_seconds == 10.0
        assert config.retry_delay_seconds == 1.0

    def test_ack_phase_budget(self):
        """Test the worst-case time before DeliveryFailed."""
        assert CommunicationConfig().ack_phase_budget_ms == DEFAULT_ACK_BUDGET_MS


class TestValidation:
    """Invalid options are rejected at construction."""

    def test_camel_case_aliases(self):
        """Test that webview-style option names are accepted."""
        config = CommunicationConfig.model_validate({"ackTimeoutMs": 500, "maxRetries": 0})
        assert config.ack_timeout_ms == 500
        assert config.max_retries == 0

    @pytest.mark.parametrize(
        "options",
        [
            {"ack_timeout_ms": 0},
            {"response_timeout_ms": -1},
            {"max_retries": -1},
            {"missed_pong_threshold": 0},
            {"unknown_option": 1},
        ],
    )
    def test_invalid_options(self, options):
        """Test that out-of-range and unknown options raise."""
        with pytest.raises(ValidationError):
            _ = CommunicationConfig(**options)

    def test_frozen(self):
        """Test that a config cannot be mutated after construction."""
        config = CommunicationConfig()
        with pytest.raises(ValidationError):
            config.max_retries = 5


class TestFromEnv:
    """Tests for environment-based configuration."""

    def test_reads_prefixed_variables(self):
        """Test that WEBVIEW_COMM_<FIELD> variables are parsed."""
        config = CommunicationConfig.from_env(
            {"WEBVIEW_COMM_ACK_TIMEOUT_MS": "750", "WEBVIEW_COMM_VALIDATE_PAYLOADS": "false", "OTHER": "x"},
        )
        assert config.ack_timeout_ms == 750
        assert config.validate_payloads is False

    @pytest.mark.parametrize("value", ["", "none", "NULL"])
    def test_sync_command_can_be_disabled(self, value):
        """Test that an empty or none sync command disables resync."""
        config = CommunicationConfig.from_env({"WEBVIEW_COMM_SYNC_COMMAND": value})
        assert config.sync_command is None

    def test_overrides_win(self):
        """Test that keyword overrides take precedence over the environment."""
        config = CommunicationConfig.from_env({"WEBVIEW_COMM_MAX_RETRIES": "5"}, max_retries=1)
        assert config.max_retries == 1

    def test_invalid_environment_value(self):
        """Test that an unparsable value raises ValidationError."""
        with pytest.raises(ValidationError):
            _ = CommunicationConfig.from_env({"WEBVIEW_COMM_MAX_RETRIES": "many"})
