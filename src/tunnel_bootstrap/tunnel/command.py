"""Tunnel-client command lines."""

from pathlib import Path

from .credentials import CredentialKind, TunnelCredential

BASE_ARGS = ["tunnel", "--edge-ip-version", "auto"]


def build_tunnel_command(
    binary: Path,
    credential: TunnelCredential,
    local_port: int,
    ingress_path: Path | None = None,
    log_path: Path | None = None,
) -> list[str]:
    """Build the tunnel client's argument vector.

    The run mode follows the credential kind: a token runs a remotely
    managed tunnel, a JSON credential runs from the ingress descriptor,
    and no credential opens an ephemeral quick tunnel that logs its
    assigned hostname to ``log_path``.

    Args:
        binary: Tunnel client executable
        credential: Discriminated credential
        local_port: Local port the quick tunnel forwards to
        ingress_path: Ingress descriptor (JSON mode)
        log_path: Log file (ephemeral mode)

    Returns:
        Argument vector including the executable

    Raises:
        ValueError: If the file required by the mode is missing
    """
    command = [str(binary), *BASE_ARGS]

    if credential.kind == CredentialKind.TOKEN:
        return command + [
            "--no-autoupdate",
            "--protocol",
            "http2",
            "run",
            "--token",
            credential.raw,
        ]

    if credential.kind == CredentialKind.JSON and ingress_path is not None:
        return command + ["--config", str(ingress_path), "run"]

    if log_path is None:
        raise ValueError("Ephemeral tunnel requires a log file path")

    return command + [
        "--no-autoupdate",
        "--protocol",
        "http2",
        "--logfile",
        str(log_path),
        "--loglevel",
        "info",
        "--url",
        f"http://localhost:{local_port}",
    ]
