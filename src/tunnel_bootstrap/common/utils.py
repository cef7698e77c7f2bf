"""Utility functions for the tunnel bootstrap."""

import time
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range
    """
    if not isinstance(port, int) or not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., tunnel token, UUID)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize dictionary data for safe logging by masking sensitive fields.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    sensitive_fields = {
        "uuid",
        "token",
        "auth",
        "password",
        "secret",
    }

    sanitized = {}
    for key, value in data.items():
        if any(sensitive_field in key.lower() for sensitive_field in sensitive_fields):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized


def poll_until(
    check: Callable[[], T | None],
    timeout: float,
    initial_interval: float = 0.1,
    max_interval: float = 2.0,
    backoff: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T | None:
    """Call ``check`` until it returns a value or the deadline passes.

    The wait between attempts grows exponentially from ``initial_interval``
    up to ``max_interval``. ``check`` is always called at least once and
    once more right at the deadline.

    Args:
        check: Callable returning None while the condition is not met
        timeout: Overall deadline in seconds
        initial_interval: First wait between attempts
        max_interval: Upper bound for a single wait
        backoff: Growth factor applied after each failed attempt
        sleep: Sleep function (injectable for tests)

    Returns:
        First non-None result of ``check``, or None on timeout
    """
    deadline = time.monotonic() + timeout
    interval = initial_interval

    while True:
        result = check()
        if result is not None:
            return result

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None

        sleep(min(interval, max_interval, remaining))
        interval *= backoff
