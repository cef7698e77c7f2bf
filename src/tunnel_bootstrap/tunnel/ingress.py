"""Ingress descriptor for structured-credential tunnels."""

from pathlib import Path
from typing import Any

import yaml

from ..common.exceptions import ConfigurationError
from ..common.logging import get_logger
from ..common.utils import validate_port
from .credentials import CredentialKind, TunnelCredential

logger = get_logger(__name__)


def build_ingress(
    tunnel_id: str,
    credentials_file: Path,
    hostname: str,
    local_port: int,
) -> dict[str, Any]:
    """Build the ingress descriptor for a named tunnel.

    Args:
        tunnel_id: Tunnel identifier from the credential
        credentials_file: Path of the credential JSON written for the client
        hostname: Public hostname routed to the local port
        local_port: Local port the hostname forwards to

    Returns:
        Descriptor as a plain dictionary
    """
    if not hostname:
        raise ConfigurationError("Ingress requires a tunnel hostname")
    validate_port(local_port, "Tunnel target port")

    return {
        "tunnel": tunnel_id,
        "credentials-file": str(credentials_file),
        "protocol": "http2",
        "ingress": [
            {
                "hostname": hostname,
                "service": f"http://localhost:{local_port}",
                "originRequest": {"noTLSVerify": True},
            },
            {"service": "http_status:404"},
        ],
    }


def write_tunnel_files(
    credential: TunnelCredential,
    hostname: str,
    local_port: int,
    credentials_path: Path,
    ingress_path: Path,
) -> Path:
    """Write the credential JSON verbatim and the ingress descriptor next to it.

    Args:
        credential: JSON-kind tunnel credential
        hostname: Public hostname
        local_port: Local port the tunnel forwards to
        credentials_path: Destination of the credential JSON
        ingress_path: Destination of the descriptor

    Returns:
        Path of the ingress descriptor

    Raises:
        ConfigurationError: If the credential is not a JSON credential
    """
    if credential.kind != CredentialKind.JSON or credential.tunnel_id is None:
        raise ConfigurationError("Ingress descriptor requires a JSON tunnel credential")

    descriptor = build_ingress(
        credential.tunnel_id, credentials_path.resolve(), hostname, local_port
    )

    credentials_path.parent.mkdir(parents=True, exist_ok=True)
    credentials_path.write_text(credential.raw, encoding="utf-8")
    credentials_path.chmod(0o600)

    ingress_path.write_text(
        yaml.safe_dump(descriptor, sort_keys=False, default_flow_style=False),
        encoding="utf-8",
    )

    logger.info(
        "Tunnel ingress written",
        path=str(ingress_path),
        hostname=hostname,
        port=local_port,
    )
    return ingress_path
