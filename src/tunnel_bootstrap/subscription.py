"""Connection links and the aggregated subscription document."""

import base64
import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from .common.logging import get_logger
from .proxy.models import WS_PATHS, Protocol

if TYPE_CHECKING:
    from .settings import TunnelConfig

logger = get_logger(__name__)

FINGERPRINT = "firefox"
EARLY_DATA = "?ed=2560"
LINK_SEPARATOR = "\n\n"


class SubscriptionDocument(BaseModel):
    """Ordered protocol links plus their aggregated, encoded form."""

    model_config = ConfigDict(frozen=True)

    links: list[str] = Field(default_factory=list)

    @property
    def content(self) -> str:
        """Links separated by blank lines."""
        return LINK_SEPARATOR.join(self.links) + "\n"

    @property
    def encoded(self) -> str:
        """Base64 of the aggregated document."""
        return base64.b64encode(self.content.encode("utf-8")).decode("ascii")


class ParsedLink(BaseModel):
    """Components recovered from one link."""

    model_config = ConfigDict(frozen=True)

    protocol: Protocol
    credential: str
    host: str
    port: int
    path: str
    sni: str | None = None
    name: str = ""


class SubscriptionBuilder:
    """Renders per-protocol links for a resolved tunnel hostname."""

    def __init__(self, config: "TunnelConfig"):
        self.config = config

    def address(self, hostname: str) -> str:
        """Address clients dial: the fronting IP, or the tunnel host itself."""
        return self.config.cfip or hostname

    def render_link(self, protocol: Protocol, hostname: str, name: str) -> str:
        """Render the link for one protocol.

        Args:
            protocol: Protocol to render
            hostname: Resolved tunnel hostname (TLS server name and Host header)
            name: Display name

        Returns:
            Link URI
        """
        if protocol == Protocol.VMESS:
            return self._vmess_link(hostname, name)

        params = [("security", "tls"), ("sni", hostname), ("fp", FINGERPRINT)]
        if protocol == Protocol.VLESS:
            params.insert(0, ("encryption", "none"))
        params += [
            ("type", "ws"),
            ("host", hostname),
            ("path", WS_PATHS[protocol] + EARLY_DATA),
        ]

        query = urlencode(params, quote_via=quote)
        return (
            f"{protocol.value}://{self.config.uuid}@{self.address(hostname)}:"
            f"{self.config.cfport}?{query}#{quote(name, safe='')}"
        )

    def _vmess_link(self, hostname: str, name: str) -> str:
        # Legacy v2 share format: a base64 JSON object as the URI body.
        payload = {
            "v": "2",
            "ps": name,
            "add": self.address(hostname),
            "port": str(self.config.cfport),
            "id": self.config.uuid,
            "aid": "0",
            "scy": "none",
            "net": "ws",
            "type": "none",
            "host": hostname,
            "path": WS_PATHS[Protocol.VMESS] + EARLY_DATA,
            "tls": "tls",
            "sni": hostname,
            "alpn": "",
            "fp": FINGERPRINT,
        }
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        return "vmess://" + base64.b64encode(body.encode("utf-8")).decode("ascii")

    def build(self, hostname: str, label: str) -> SubscriptionDocument:
        """Build the subscription for every enabled protocol.

        Args:
            hostname: Resolved tunnel hostname
            label: Geolocation label or placeholder

        Returns:
            SubscriptionDocument with one link per enabled protocol
        """
        name = self.config.node_name(label)
        links = [
            self.render_link(protocol, hostname, name)
            for protocol in self.config.protocol_ports
        ]
        logger.info("Subscription built", hostname=hostname, links=len(links), name=name)
        return SubscriptionDocument(links=links)

    @staticmethod
    def persist(document: SubscriptionDocument, path: Path) -> Path:
        """Write the encoded document, replacing the previous one."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".sub_")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(document.encoded)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        logger.info("Subscription written", path=str(path))
        return path


def parse_link(link: str) -> ParsedLink:
    """Parse a link produced by SubscriptionBuilder back into its components.

    Raises:
        ValueError: If the link is not a VLESS, VMess or Trojan link
    """
    scheme, _, body = link.strip().partition("://")
    try:
        protocol = Protocol(scheme)
    except ValueError:
        raise ValueError(f"Unsupported link scheme: {scheme!r}") from None

    if protocol == Protocol.VMESS:
        data = json.loads(base64.b64decode(body).decode("utf-8"))
        return ParsedLink(
            protocol=protocol,
            credential=data["id"],
            host=data["add"],
            port=int(data["port"]),
            path=data["path"],
            sni=data.get("sni"),
            name=data.get("ps", ""),
        )

    parts = urlsplit(link.strip())
    query = parse_qs(parts.query)
    if parts.username is None or parts.hostname is None or parts.port is None:
        raise ValueError(f"Incomplete link: {link!r}")
    return ParsedLink(
        protocol=protocol,
        credential=unquote(parts.username),
        host=parts.hostname,
        port=parts.port,
        path=query.get("path", [""])[0],
        sni=query.get("sni", [None])[0],
        name=unquote(parts.fragment),
    )
