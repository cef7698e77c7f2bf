"""Tests for utility functions."""

import pytest

from tunnel_bootstrap.common.utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    poll_until,
    sanitize_log_data,
    validate_port,
)


class TestValidatePort:
    """Test port validation function."""

    def test_valid_ports(self):
        """Test validation of valid ports."""
        validate_port(MIN_PORT, "Min port")
        validate_port(443, "HTTPS port")
        validate_port(8001, "Public port")
        validate_port(MAX_PORT, "Max port")

    def test_invalid_ports(self):
        """Test validation of invalid ports."""
        with pytest.raises(ValueError, match="Test port must be between 1 and 65535"):
            validate_port(0, "Test port")

        with pytest.raises(ValueError, match="Test port must be between 1 and 65535"):
            validate_port(65536, "Test port")

    def test_non_integer_ports(self):
        """Test validation of non-integer ports."""
        with pytest.raises(ValueError):
            validate_port("80", "Test port")  # type: ignore

        with pytest.raises(ValueError):
            validate_port(80.5, "Test port")  # type: ignore


class TestMaskSensitiveData:
    """Test sensitive data masking function."""

    def test_mask_normal_data(self):
        assert mask_sensitive_data("secret123456") == "********3456"
        assert mask_sensitive_data("token_abcdef", show_chars=6) == "******abcdef"

    def test_mask_short_data(self):
        assert mask_sensitive_data("ab") == "**"
        assert mask_sensitive_data("abcd") == "****"

    def test_mask_none_data(self):
        assert mask_sensitive_data(None) == "<None>"
        assert mask_sensitive_data("") == "<None>"


class TestSanitizeLogData:
    """Test log data sanitization function."""

    def test_sanitize_sensitive_fields(self):
        data = {
            "uuid": "11111111-1111-1111-1111-111111111111",
            "argo_auth": "tokenvalue1234",
            "monitor_token": "abcdef",
            "hostname": "example.trycloudflare.com",
        }

        sanitized = sanitize_log_data(data)

        assert sanitized["uuid"].endswith("1111")
        assert sanitized["uuid"].startswith("****")
        assert sanitized["argo_auth"] == "**********1234"
        assert sanitized["monitor_token"] == "**cdef"
        assert sanitized["hostname"] == "example.trycloudflare.com"

    def test_empty_sensitive_value(self):
        assert sanitize_log_data({"secret": ""}) == {"secret": "<None>"}


class TestPollUntil:
    """Test exponential-backoff polling."""

    def test_returns_first_result_without_sleeping(self):
        sleeps = []
        result = poll_until(lambda: "ready", timeout=5, sleep=sleeps.append)

        assert result == "ready"
        assert sleeps == []

    def test_backoff_grows_and_is_capped(self):
        """Waits double each attempt up to the maximum interval."""
        answers = iter([None, None, None, None, "done"])
        sleeps = []

        result = poll_until(
            lambda: next(answers),
            timeout=60,
            initial_interval=0.5,
            max_interval=2.0,
            sleep=sleeps.append,
        )

        assert result == "done"
        assert sleeps == [0.5, 1.0, 2.0, 2.0]

    def test_times_out(self):
        calls = []

        def check():
            calls.append(1)
            return None

        result = poll_until(check, timeout=0.05, initial_interval=0.01, max_interval=0.01)

        assert result is None
        assert len(calls) >= 2

    def test_zero_timeout_checks_once(self):
        calls = []

        def check():
            calls.append(1)
            return None

        assert poll_until(check, timeout=0, sleep=lambda _: None) is None
        assert len(calls) == 1

    def test_falsy_non_none_result_is_returned(self):
        assert poll_until(lambda: 0, timeout=1) == 0
