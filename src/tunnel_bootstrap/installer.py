"""Provisioning of the external binaries the bootstrap runs.

Each tool is resolved for the host CPU architecture, downloaded once into
the working directory and marked executable. A cached file above the
minimum viable size is reused without any network request.
"""

import io
import os
import platform
import stat
import tarfile
import tempfile
import zipfile
from enum import Enum
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .common.exceptions import ProvisioningError, UnsupportedArchitectureError
from .common.logging import get_logger

logger = get_logger(__name__)

MIN_BINARY_SIZE = 1_000_000
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 60.0

ARCH_MAPPING = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


class ArchiveFormat(str, Enum):
    """Artifact packaging."""

    RAW = "raw"
    ZIP = "zip"
    TAR_GZ = "tar.gz"


class ToolSpec(BaseModel):
    """Download description of one external tool."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, description="Logical tool name and local file name")
    urls: dict[str, str] = Field(description="Artifact URL per normalized architecture")
    archive: ArchiveFormat = Field(default=ArchiveFormat.RAW)
    member: str | None = Field(default=None, description="Entry to extract from an archive")
    max_redirects: int = Field(default=1, ge=0, le=5)

    def url_for(self, arch: str) -> str:
        """Return the artifact URL for a normalized architecture."""
        try:
            return self.urls[arch]
        except KeyError:
            raise UnsupportedArchitectureError(
                f"No {self.name} artifact for architecture '{arch}'"
            ) from None


XRAY = ToolSpec(
    name="xray",
    urls={
        "amd64": "https://github.com/XTLS/Xray-core/releases/download/v1.8.24/Xray-linux-64.zip",
        "arm64": "https://github.com/XTLS/Xray-core/releases/download/v1.8.24/Xray-linux-arm64-v8a.zip",
    },
    archive=ArchiveFormat.ZIP,
    member="xray",
)

CLOUDFLARED = ToolSpec(
    name="cloudflared",
    urls={
        "amd64": "https://github.com/cloudflare/cloudflared/releases/download/2024.8.2/cloudflared-linux-amd64",
        "arm64": "https://github.com/cloudflare/cloudflared/releases/download/2024.8.2/cloudflared-linux-arm64",
    },
)

# The "latest" alias adds one redirect hop before the asset redirect.
MONITOR_AGENT = ToolSpec(
    name="komari-agent",
    urls={
        "amd64": "https://github.com/komari-monitor/komari-agent/releases/latest/download/komari-agent-linux-amd64",
        "arm64": "https://github.com/komari-monitor/komari-agent/releases/latest/download/komari-agent-linux-arm64",
    },
    max_redirects=2,
)


def detect_architecture(machine: str | None = None) -> str:
    """Normalize the host CPU architecture.

    Args:
        machine: Raw machine name (defaults to platform.machine())

    Returns:
        Normalized architecture ("amd64" or "arm64")

    Raises:
        UnsupportedArchitectureError: If the architecture is not recognized
    """
    raw = (machine if machine is not None else platform.machine()).lower()
    arch = ARCH_MAPPING.get(raw)
    if arch is None:
        raise UnsupportedArchitectureError(f"Unsupported CPU architecture: '{raw}'")
    return arch


class BinaryProvisioner:
    """Downloads and caches external binaries in a directory."""

    def __init__(
        self,
        bin_dir: Path,
        arch: str | None = None,
        min_size: int = MIN_BINARY_SIZE,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize BinaryProvisioner.

        Args:
            bin_dir: Directory binaries are installed into
            arch: Raw or normalized architecture (auto-detected if None)
            min_size: Smallest file size accepted as a complete binary
            transport: Optional httpx transport (tests)
        """
        self.bin_dir = bin_dir
        self._machine = arch
        self.min_size = min_size
        self._transport = transport

    def binary_path(self, tool: ToolSpec) -> Path:
        return self.bin_dir / tool.name

    def is_cached(self, tool: ToolSpec) -> bool:
        """Check whether a complete binary is already installed."""
        path = self.binary_path(tool)
        try:
            return path.is_file() and path.stat().st_size > self.min_size
        except OSError:
            return False

    def ensure(self, tool: ToolSpec) -> Path:
        """Return an executable binary for ``tool``, downloading it if needed.

        Args:
            tool: Tool to provision

        Returns:
            Path to the executable binary

        Raises:
            UnsupportedArchitectureError: If the tool has no artifact for this host
            ProvisioningError: If download, extraction or installation fails
        """
        target = self.binary_path(tool)

        if self.is_cached(tool):
            logger.debug("Binary already provisioned", tool=tool.name, path=str(target))
            try:
                self._make_executable(target)
            except OSError as e:
                raise ProvisioningError(f"Cached {tool.name} is not usable: {e}") from e
            return target

        url = tool.url_for(detect_architecture(self._machine))
        logger.info("Downloading binary", tool=tool.name, url=url)

        self.bin_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self.bin_dir, prefix=f".{tool.name}_")
        temp_path = Path(temp_name)

        try:
            with os.fdopen(fd, "wb") as f:
                self._download(url, f, tool.max_redirects)

            if tool.archive != ArchiveFormat.RAW:
                self._extract_member(temp_path, tool)

            self._make_executable(temp_path)
            os.replace(temp_path, target)
        except httpx.HTTPError as e:
            raise ProvisioningError(f"Failed to download {tool.name}: {e}") from e
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
            raise ProvisioningError(f"Failed to install {tool.name}: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        logger.info(
            "Binary provisioned",
            tool=tool.name,
            path=str(target),
            size=target.stat().st_size,
        )
        return target

    def _client(self, max_redirects: int) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(READ_TIMEOUT, connect=CONNECT_TIMEOUT),
            follow_redirects=max_redirects > 0,
            max_redirects=max_redirects,
            headers={"User-Agent": "Mozilla/5.0"},
            transport=self._transport,
        )

    def _download(self, url: str, sink: io.BufferedWriter, max_redirects: int) -> None:
        with self._client(max_redirects) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes():
                    sink.write(chunk)

    @staticmethod
    def _extract_member(archive_path: Path, tool: ToolSpec) -> None:
        """Replace the downloaded archive in place with its named entry."""
        if tool.member is None:
            raise ProvisioningError(f"No archive member configured for {tool.name}")

        if tool.archive == ArchiveFormat.ZIP:
            with zipfile.ZipFile(archive_path) as archive:
                try:
                    data = archive.read(tool.member)
                except KeyError:
                    raise ProvisioningError(
                        f"{tool.member} not found in {tool.name} archive"
                    ) from None
        else:
            with tarfile.open(archive_path, "r:gz") as archive:
                member = next(
                    (m for m in archive.getmembers()
                     if m.isfile() and Path(m.name).name == tool.member),
                    None,
                )
                extracted = archive.extractfile(member) if member else None
                if extracted is None:
                    raise ProvisioningError(f"{tool.member} not found in {tool.name} archive")
                data = extracted.read()

        archive_path.write_bytes(data)

    @staticmethod
    def _make_executable(path: Path) -> None:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
