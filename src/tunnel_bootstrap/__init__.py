"""Tunnel Bootstrap - expose a co-hosted proxy core through an outbound tunnel."""

from .bootstrap import BootstrapResult, TunnelBootstrap, boot, check_runtime

# Common utilities
from .common.exceptions import (
    BinaryNotFoundError,
    BootstrapError,
    ConfigurationError,
    ProcessError,
    ProvisioningError,
    UnsupportedArchitectureError,
)
from .common.logging import get_logger, setup_logging
from .common.utils import mask_sensitive_data, poll_until, sanitize_log_data, validate_port

# Components
from .geo import lookup_label
from .installer import BinaryProvisioner, ToolSpec, detect_architecture
from .lifecycle import LifecycleScheduler
from .process import ProcessSupervisor, Role, wait_for_port
from .proxy import ProxyConfigBuilder, ProxyConfigDocument, generate_proxy_config
from .publisher import Publisher
from .settings import TunnelConfig, load_config
from .subscription import SubscriptionBuilder, SubscriptionDocument, parse_link
from .tunnel import (
    CredentialKind,
    DomainResolver,
    TunnelCredential,
    build_ingress,
    build_tunnel_command,
)

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # Orchestration
    "boot",
    "check_runtime",
    "TunnelBootstrap",
    "BootstrapResult",
    # Configuration
    "TunnelConfig",
    "load_config",
    # Proxy core
    "ProxyConfigBuilder",
    "ProxyConfigDocument",
    "generate_proxy_config",
    # Tunnel client
    "CredentialKind",
    "TunnelCredential",
    "DomainResolver",
    "build_ingress",
    "build_tunnel_command",
    # Processes and binaries
    "BinaryProvisioner",
    "ToolSpec",
    "detect_architecture",
    "ProcessSupervisor",
    "Role",
    "wait_for_port",
    "LifecycleScheduler",
    # Links
    "SubscriptionBuilder",
    "SubscriptionDocument",
    "parse_link",
    "Publisher",
    "lookup_label",
    # Exceptions
    "BootstrapError",
    "ConfigurationError",
    "ProvisioningError",
    "UnsupportedArchitectureError",
    "BinaryNotFoundError",
    "ProcessError",
    # Utilities
    "get_logger",
    "setup_logging",
    "validate_port",
    "mask_sensitive_data",
    "sanitize_log_data",
    "poll_until",
]
