"""Layered configuration for the tunnel bootstrap.

Values resolve as built-in defaults < process environment < optional
dotenv-style file. Only the names declared on TunnelConfig are recognized;
anything else in the environment or the file is ignored.
"""

import uuid as uuid_lib
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .common.exceptions import ConfigurationError
from .proxy.models import PROTOCOL_ORDER, Protocol
from .tunnel.credentials import TunnelCredential

CONFIG_FILE = "config.json"
BOOT_LOG_FILE = "boot.log"
SUBSCRIPTION_FILE = "sub.txt"
TUNNEL_CREDENTIALS_FILE = "tunnel.json"
INGRESS_FILE = "tunnel.yml"

GENERATED_FILES = (
    CONFIG_FILE,
    BOOT_LOG_FILE,
    SUBSCRIPTION_FILE,
    TUNNEL_CREDENTIALS_FILE,
    INGRESS_FILE,
)


class TunnelConfig(BaseSettings):
    """Immutable configuration record for one bootstrap run."""

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        case_sensitive=False,
        str_strip_whitespace=True,
        env_ignore_empty=True,
        env_file_encoding="utf-8",
    )

    # Identity and layout
    uuid: str = Field(default_factory=lambda: str(uuid_lib.uuid4()))
    file_path: Path = Field(default=Path("./.tunnel"), description="Working directory")
    sub_path: str = Field(default="sub", description="Subscription URL path segment")

    # Proxy-core ports; 0 disables
    argo_port: int = Field(default=8001, ge=0, le=65535, description="Public multiplexed port")
    fallback_port: int = Field(default=3001, ge=0, le=65535)
    vless_port: int = Field(default=3002, ge=0, le=65535)
    vmess_port: int = Field(default=3003, ge=0, le=65535)
    trojan_port: int = Field(default=3004, ge=0, le=65535)

    # Tunnel
    argo_auth: str = Field(default="", repr=False, description="Tunnel credential")
    argo_domain: str = Field(default="", description="Static tunnel hostname")

    # Links
    cfip: str = Field(default="", description="Fronting address (blank: tunnel hostname)")
    cfport: int = Field(default=443, ge=1, le=65535)
    name: str = Field(default="", description="Display-name prefix")

    # Publishing
    upload_url: str = Field(default="")
    project_url: str = Field(default="")
    auto_access: bool = Field(default=False)
    keepalive_url: str = Field(default="")

    # Monitoring agent
    monitor_endpoint: str = Field(default="")
    monitor_token: str = Field(default="", repr=False)

    # Runtime behavior
    process_output: Literal["discard", "inherit"] = Field(default="discard")
    cleanup_delay: float = Field(default=90.0, ge=0)
    log_level: str = Field(default="INFO")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources win: the override file beats the environment.
        return init_settings, dotenv_settings, env_settings

    @field_validator("uuid")
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Validate UUID shape."""
        try:
            return str(uuid_lib.UUID(v))
        except ValueError as e:
            raise ValueError(f"UUID is not a valid UUID: {v!r}") from e

    @field_validator("file_path")
    @classmethod
    def anchor_file_path(cls, v: Path) -> Path:
        """Make the working directory absolute; children run with it as cwd."""
        return v.expanduser().absolute()

    @field_validator("sub_path")
    @classmethod
    def validate_sub_path(cls, v: str) -> str:
        """Strip slashes from the subscription path segment."""
        v = v.strip("/")
        if not v:
            raise ValueError("Subscription path cannot be empty")
        return v

    @field_validator("upload_url", "project_url", "keepalive_url", "monitor_endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v

    @model_validator(mode="after")
    def validate_multiplexing(self) -> "TunnelConfig":
        if self.argo_port and not self.fallback_port:
            raise ValueError("FALLBACK_PORT is required when ARGO_PORT is set")
        return self

    @property
    def protocol_ports(self) -> dict[Protocol, int]:
        """Enabled protocols and their loopback ports, in render order."""
        ports = {
            Protocol.VLESS: self.vless_port,
            Protocol.VMESS: self.vmess_port,
            Protocol.TROJAN: self.trojan_port,
        }
        return {p: ports[p] for p in PROTOCOL_ORDER if ports[p] > 0}

    @property
    def multiplexed(self) -> bool:
        return self.argo_port > 0

    @property
    def tunnel_target_port(self) -> int:
        """Local port the tunnel client forwards to (0 when none)."""
        if not self.protocol_ports:
            return 0
        if self.multiplexed:
            return self.argo_port
        return next(iter(self.protocol_ports.values()), 0)

    @property
    def credential(self) -> TunnelCredential:
        return TunnelCredential.parse(self.argo_auth)

    @property
    def monitor_enabled(self) -> bool:
        return bool(self.monitor_endpoint and self.monitor_token)

    @property
    def config_path(self) -> Path:
        return self.file_path / CONFIG_FILE

    @property
    def boot_log_path(self) -> Path:
        return self.file_path / BOOT_LOG_FILE

    @property
    def subscription_path(self) -> Path:
        return self.file_path / SUBSCRIPTION_FILE

    @property
    def tunnel_credentials_path(self) -> Path:
        return self.file_path / TUNNEL_CREDENTIALS_FILE

    @property
    def ingress_path(self) -> Path:
        return self.file_path / INGRESS_FILE

    @property
    def subscription_url(self) -> str | None:
        if not self.project_url:
            return None
        return f"{self.project_url}/{self.sub_path}"

    def node_name(self, label: str) -> str:
        """Display name for links: ``NAME-label`` or just ``label``."""
        return f"{self.name}-{label}" if self.name else label


def load_config(env_file: str | Path | None = None, **overrides: Any) -> TunnelConfig:
    """Load the configuration record.

    Args:
        env_file: Optional dotenv-style file whose values override the environment
        **overrides: Explicit values (highest priority, mainly for tests)

    Returns:
        Validated, frozen TunnelConfig

    Raises:
        ConfigurationError: If any recognized value is invalid
    """
    try:
        return TunnelConfig(_env_file=env_file, **overrides)  # type: ignore[call-arg]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
