"""Common utilities and shared functionality."""

from .exceptions import (
    BinaryNotFoundError,
    BootstrapError,
    ConfigurationError,
    ProcessError,
    ProvisioningError,
    UnsupportedArchitectureError,
)
from .logging import get_logger, setup_logging
from .utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    poll_until,
    sanitize_log_data,
    validate_port,
)

__all__ = [
    # Exceptions
    "BootstrapError",
    "ConfigurationError",
    "ProvisioningError",
    "UnsupportedArchitectureError",
    "BinaryNotFoundError",
    "ProcessError",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_port",
    "mask_sensitive_data",
    "sanitize_log_data",
    "poll_until",
    "MIN_PORT",
    "MAX_PORT",
]
