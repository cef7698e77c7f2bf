"""Reverse-tunnel client components."""

from .command import build_tunnel_command
from .credentials import CredentialKind, TunnelCredential
from .ingress import build_ingress, write_tunnel_files
from .resolver import DomainResolver, extract_ephemeral_host

__all__ = [
    "CredentialKind",
    "TunnelCredential",
    "DomainResolver",
    "extract_ephemeral_host",
    "build_ingress",
    "write_tunnel_files",
    "build_tunnel_command",
]
