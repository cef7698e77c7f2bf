"""Tunnel credential discrimination.

The tunnel credential arrives as one opaque string. Its kind is decided by
its shape: a connector token, a JSON secret blob, or nothing usable (which
means an ephemeral quick tunnel).
"""

import json
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9=]{120,250}$")


class CredentialKind(str, Enum):
    """Tunnel credential kinds."""

    TOKEN = "token"
    JSON = "json"
    ABSENT = "absent"


class TunnelCredential(BaseModel):
    """Discriminated tunnel credential."""

    model_config = ConfigDict(frozen=True)

    kind: CredentialKind = Field(description="Credential kind derived from shape")
    raw: str = Field(default="", repr=False, description="Credential as configured")
    tunnel_id: str | None = Field(default=None, description="Tunnel ID (JSON kind)")
    malformed: bool = Field(
        default=False, description="Non-blank input that matched no known shape"
    )

    @classmethod
    def parse(cls, value: str | None) -> "TunnelCredential":
        """Classify a raw credential string.

        Args:
            value: Raw credential (token, JSON blob, or blank)

        Returns:
            TunnelCredential with the detected kind
        """
        raw = (value or "").strip()
        if not raw:
            return cls(kind=CredentialKind.ABSENT)

        if TOKEN_PATTERN.match(raw):
            return cls(kind=CredentialKind.TOKEN, raw=raw)

        secret = _load_json_secret(raw)
        if secret is not None:
            return cls(
                kind=CredentialKind.JSON,
                raw=raw,
                tunnel_id=str(secret["TunnelID"]),
            )

        return cls(kind=CredentialKind.ABSENT, raw=raw, malformed=True)

    @property
    def is_present(self) -> bool:
        return self.kind != CredentialKind.ABSENT


def _load_json_secret(raw: str) -> dict[str, Any] | None:
    try:
        data = json.loads(raw)
    except ValueError:
        return None

    if not isinstance(data, dict):
        return None
    if "TunnelSecret" not in data or not data.get("TunnelID"):
        return None
    return data
