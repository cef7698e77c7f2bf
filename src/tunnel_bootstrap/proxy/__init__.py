"""Proxy-core configuration components."""

from .config import (
    ProxyConfigBuilder,
    derive_inbounds,
    generate_proxy_config,
    write_proxy_config,
)
from .models import (
    LOOPBACK_ADDR,
    PROTOCOL_ORDER,
    WS_PATHS,
    InboundSpec,
    ListenScope,
    Protocol,
    ProxyConfigDocument,
    Transport,
)

__all__ = [
    "ProxyConfigBuilder",
    "derive_inbounds",
    "generate_proxy_config",
    "write_proxy_config",
    "InboundSpec",
    "ListenScope",
    "Protocol",
    "ProxyConfigDocument",
    "Transport",
    "LOOPBACK_ADDR",
    "PROTOCOL_ORDER",
    "WS_PATHS",
]
