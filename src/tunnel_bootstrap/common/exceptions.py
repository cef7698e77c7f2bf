"""Custom exceptions for the tunnel bootstrap."""


class BootstrapError(Exception):
    """Base exception for all tunnel bootstrap errors."""
    pass


class ConfigurationError(BootstrapError):
    """Raised when configuration is invalid or incomplete."""
    pass


class ProvisioningError(BootstrapError):
    """Raised when an external binary cannot be downloaded or installed."""
    pass


class UnsupportedArchitectureError(ProvisioningError):
    """Raised when no artifact exists for the host CPU architecture."""
    pass


class BinaryNotFoundError(BootstrapError):
    """Raised when a binary is not found or not executable."""
    pass


class ProcessError(BootstrapError):
    """Raised when child process operations fail."""
    pass
