"""Proxy-core models.

InboundSpec describes one protocol listener derived from configuration.
The remaining models mirror the JSON document consumed by the proxy-core
binary, so the document is built from typed objects and serialized once.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Protocol(str, Enum):
    """Supported inbound protocols."""

    VLESS = "vless"
    VMESS = "vmess"
    TROJAN = "trojan"


class Transport(str, Enum):
    """Inbound transport."""

    TCP = "tcp"
    WS = "ws"


class ListenScope(str, Enum):
    """Where an inbound listens."""

    PUBLIC = "public"
    LOOPBACK = "loopback"


LOOPBACK_ADDR = "127.0.0.1"

# Fixed order used everywhere a protocol sequence is rendered.
PROTOCOL_ORDER: tuple[Protocol, ...] = (Protocol.VLESS, Protocol.VMESS, Protocol.TROJAN)

WS_PATHS: dict[Protocol, str] = {
    Protocol.VLESS: "/vless-argo",
    Protocol.VMESS: "/vmess-argo",
    Protocol.TROJAN: "/trojan-argo",
}


class InboundSpec(BaseModel):
    """One configured protocol listener."""

    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    transport: Transport = Field(default=Transport.WS)
    scope: ListenScope = Field(default=ListenScope.LOOPBACK)
    port: int = Field(ge=1, le=65535)
    path: str | None = Field(default=None, description="WebSocket path")
    uuid: str | None = Field(default=None, description="Client ID (VLESS/VMess)")
    alter_id: int | None = Field(default=None, description="VMess alterId")
    password: str | None = Field(default=None, description="Trojan password")

    @classmethod
    def for_protocol(cls, protocol: Protocol, port: int, secret: str) -> "InboundSpec":
        """Build the loopback WebSocket spec for a protocol.

        Args:
            protocol: Inbound protocol
            port: Loopback port
            secret: Identity secret (UUID, also used as Trojan password)

        Returns:
            InboundSpec with the protocol's credential shape
        """
        if protocol == Protocol.VLESS:
            credential: dict[str, Any] = {"uuid": secret}
        elif protocol == Protocol.VMESS:
            credential = {"uuid": secret, "alter_id": 0}
        else:
            credential = {"password": secret}

        return cls(
            protocol=protocol,
            transport=Transport.WS,
            scope=ListenScope.LOOPBACK,
            port=port,
            path=WS_PATHS[protocol],
            **credential,
        )

    @property
    def tag(self) -> str:
        return f"{self.protocol.value}-{self.transport.value}"


class _Document(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Client(_Document):
    id: str | None = None
    password: str | None = None
    alter_id: int | None = Field(default=None, alias="alterId")
    level: int | None = None


class Fallback(_Document):
    path: str | None = None
    dest: int


class InboundSettings(_Document):
    clients: list[Client]
    decryption: str | None = None
    fallbacks: list[Fallback] | None = None


class WsSettings(_Document):
    path: str


class StreamSettings(_Document):
    network: str
    security: str | None = None
    ws_settings: WsSettings | None = Field(default=None, alias="wsSettings")


class Sniffing(_Document):
    enabled: bool = True
    dest_override: list[str] = Field(alias="destOverride")
    metadata_only: bool | None = Field(default=None, alias="metadataOnly")


class Inbound(_Document):
    tag: str
    port: int
    listen: str | None = None
    protocol: str
    settings: InboundSettings
    stream_settings: StreamSettings = Field(alias="streamSettings")
    sniffing: Sniffing | None = None


class Outbound(_Document):
    protocol: str
    tag: str


class LogSettings(_Document):
    access: str = "/dev/null"
    error: str = "/dev/null"
    loglevel: str = "none"


class DnsSettings(_Document):
    servers: list[str]


class ProxyConfigDocument(_Document):
    """Proxy-core configuration document."""

    log: LogSettings = Field(default_factory=LogSettings)
    inbounds: list[Inbound]
    dns: DnsSettings = Field(
        default_factory=lambda: DnsSettings(servers=["https+local://8.8.8.8/dns-query"])
    )
    outbounds: list[Outbound] = Field(
        default_factory=lambda: [
            Outbound(protocol="freedom", tag="direct"),
            Outbound(protocol="blackhole", tag="block"),
        ]
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_json(self) -> str:
        """Serialize to the JSON text written for the proxy core."""
        return json.dumps(self.to_dict(), indent=2) + "\n"

    def public_inbound(self) -> Inbound | None:
        """Return the inbound listening on all interfaces, if any."""
        for inbound in self.inbounds:
            if inbound.listen is None:
                return inbound
        return None
