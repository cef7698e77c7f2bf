"""Configuration builder for the proxy core."""

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from ..common.logging import get_logger
from ..common.utils import validate_port
from .models import (
    LOOPBACK_ADDR,
    Client,
    Fallback,
    Inbound,
    InboundSettings,
    InboundSpec,
    ListenScope,
    Protocol,
    ProxyConfigDocument,
    Sniffing,
    StreamSettings,
    Transport,
    WsSettings,
)

if TYPE_CHECKING:
    from ..settings import TunnelConfig

logger = get_logger(__name__)

WS_SNIFFING = Sniffing(dest_override=["http", "tls", "quic"], metadata_only=False)
TCP_SNIFFING = Sniffing(dest_override=["http", "tls"])


class ProxyConfigBuilder:
    """Builder for proxy-core configuration documents."""

    def __init__(self, uuid: str) -> None:
        """Initialize ProxyConfigBuilder.

        Args:
            uuid: Identity secret used by the public and fallback inbounds
        """
        self._uuid = uuid
        self._specs: list[InboundSpec] = []
        self._public_port: int | None = None
        self._fallback_port: int | None = None

    def add_inbound(self, spec: InboundSpec) -> "ProxyConfigBuilder":
        """Add a protocol inbound.

        Args:
            spec: Inbound definition

        Returns:
            Self for method chaining
        """
        self._specs.append(spec)
        logger.debug("Added inbound", protocol=spec.protocol.value, port=spec.port)
        return self

    def enable_multiplexing(self, public_port: int, fallback_port: int) -> "ProxyConfigBuilder":
        """Share one public port between all inbounds, routed by path.

        Args:
            public_port: Port exposed on all interfaces
            fallback_port: Loopback port of the generic default inbound

        Returns:
            Self for method chaining

        Raises:
            ValueError: If a port is out of range
        """
        validate_port(public_port, "Public port")
        validate_port(fallback_port, "Fallback port")
        self._public_port = public_port
        self._fallback_port = fallback_port
        return self

    def build(self) -> ProxyConfigDocument | None:
        """Build the document.

        Returns:
            ProxyConfigDocument, or None when no inbound was added
        """
        if not self._specs:
            logger.info("No protocol ports configured, skipping proxy config")
            return None

        inbounds: list[Inbound] = []
        if self._public_port is not None and self._fallback_port is not None:
            inbounds.append(self._public_inbound(self._public_port, self._fallback_port))
            inbounds.append(self._fallback_inbound(self._fallback_port))

        inbounds.extend(self._protocol_inbound(spec) for spec in self._specs)
        return ProxyConfigDocument(inbounds=inbounds)

    def _public_inbound(self, public_port: int, fallback_port: int) -> Inbound:
        fallbacks = [Fallback(dest=fallback_port)]
        fallbacks.extend(
            Fallback(path=spec.path, dest=spec.port)
            for spec in self._specs
            if spec.path is not None
        )
        return Inbound(
            tag="public",
            port=public_port,
            protocol=Protocol.VLESS.value,
            settings=InboundSettings(
                clients=[Client(id=self._uuid)],
                decryption="none",
                fallbacks=fallbacks,
            ),
            stream_settings=StreamSettings(network=Transport.TCP.value),
            sniffing=TCP_SNIFFING,
        )

    def _fallback_inbound(self, fallback_port: int) -> Inbound:
        return Inbound(
            tag="fallback",
            port=fallback_port,
            listen=LOOPBACK_ADDR,
            protocol=Protocol.VLESS.value,
            settings=InboundSettings(clients=[Client(id=self._uuid)], decryption="none"),
            stream_settings=StreamSettings(network=Transport.TCP.value, security="none"),
        )

    @staticmethod
    def _protocol_inbound(spec: InboundSpec) -> Inbound:
        if spec.protocol == Protocol.VLESS:
            settings = InboundSettings(
                clients=[Client(id=spec.uuid, level=0)], decryption="none"
            )
        elif spec.protocol == Protocol.VMESS:
            settings = InboundSettings(clients=[Client(id=spec.uuid, alter_id=spec.alter_id)])
        else:
            settings = InboundSettings(clients=[Client(password=spec.password)])

        ws_settings = WsSettings(path=spec.path) if spec.path else None
        # VMess carries its own encryption; the others declare plain transport.
        security = None if spec.protocol == Protocol.VMESS else "none"
        return Inbound(
            tag=spec.tag,
            port=spec.port,
            listen=LOOPBACK_ADDR if spec.scope == ListenScope.LOOPBACK else None,
            protocol=spec.protocol.value,
            settings=settings,
            stream_settings=StreamSettings(
                network=spec.transport.value,
                security=security,
                ws_settings=ws_settings,
            ),
            sniffing=WS_SNIFFING if spec.transport == Transport.WS else None,
        )


def derive_inbounds(config: "TunnelConfig") -> list[InboundSpec]:
    """Derive one InboundSpec per enabled protocol."""
    return [
        InboundSpec.for_protocol(protocol, port, config.uuid)
        for protocol, port in config.protocol_ports.items()
    ]


def generate_proxy_config(config: "TunnelConfig") -> ProxyConfigDocument | None:
    """Turn a configuration record into a proxy-core document.

    Pure: the same record always yields the same document. Ports are copied
    as given; overlapping ports surface only when the proxy core binds.

    Args:
        config: Configuration record

    Returns:
        ProxyConfigDocument, or None when no protocol port is configured
    """
    builder = ProxyConfigBuilder(config.uuid)
    for spec in derive_inbounds(config):
        builder.add_inbound(spec)

    if config.multiplexed:
        builder.enable_multiplexing(config.argo_port, config.fallback_port)

    return builder.build()


def write_proxy_config(document: ProxyConfigDocument, path: Path) -> Path:
    """Write the document, replacing any previous file in full.

    Args:
        document: Document to write
        path: Destination file

    Returns:
        Path written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".config_", suffix=".json")

    try:
        with os.fdopen(fd, "w") as f:
            f.write(document.to_json())
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    logger.info("Proxy configuration written", path=str(path), inbounds=len(document.inbounds))
    return path
