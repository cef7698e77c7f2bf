"""Tests for binary provisioning."""

import io
import os
import tarfile
import zipfile

import httpx
import pytest
import respx

from tunnel_bootstrap.common.exceptions import ProvisioningError, UnsupportedArchitectureError
from tunnel_bootstrap.installer import (
    CLOUDFLARED,
    MONITOR_AGENT,
    XRAY,
    ArchiveFormat,
    BinaryProvisioner,
    ToolSpec,
    detect_architecture,
)

TOOL_URL = "https://downloads.example.com/tool-linux-amd64"
PAYLOAD = b"\x7fELF" + b"\x00" * 2048

RAW_TOOL = ToolSpec(name="tool", urls={"amd64": TOOL_URL})


def make_zip(members):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def make_tar_gz(members):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def provisioner(tmp_path):
    return BinaryProvisioner(tmp_path / "bin", arch="x86_64", min_size=1024)


class TestDetectArchitecture:
    """Host CPU normalization."""

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "amd64"), ("AMD64", "amd64"), ("aarch64", "arm64"), ("arm64", "arm64")],
    )
    def test_known_architectures(self, machine, expected):
        assert detect_architecture(machine) == expected

    def test_unknown_architecture(self):
        with pytest.raises(UnsupportedArchitectureError, match="mips"):
            detect_architecture("mips")


class TestToolSpecs:
    """Built-in tool definitions."""

    @pytest.mark.parametrize("tool", [XRAY, CLOUDFLARED, MONITOR_AGENT])
    def test_every_tool_covers_both_architectures(self, tool):
        assert tool.url_for("amd64").startswith("https://")
        assert tool.url_for("arm64").startswith("https://")

    def test_proxy_core_ships_as_zip(self):
        assert XRAY.archive == ArchiveFormat.ZIP
        assert XRAY.member == "xray"

    def test_unsupported_architecture(self):
        with pytest.raises(UnsupportedArchitectureError):
            CLOUDFLARED.url_for("s390x")


class TestBinaryProvisioner:
    """Download, caching and installation."""

    def test_cached_binary_is_reused_without_network(self, provisioner):
        target = provisioner.binary_path(RAW_TOOL)
        target.parent.mkdir(parents=True)
        target.write_bytes(PAYLOAD)
        target.chmod(0o644)

        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(TOOL_URL).mock(return_value=httpx.Response(200, content=PAYLOAD))
            path = provisioner.ensure(RAW_TOOL)

        assert path == target
        assert not route.called
        assert os.access(path, os.X_OK)

    def test_unusable_cached_binary(self, provisioner, monkeypatch):
        target = provisioner.binary_path(RAW_TOOL)
        target.parent.mkdir(parents=True)
        target.write_bytes(PAYLOAD)

        def deny(path):
            raise PermissionError(13, "Operation not permitted", str(path))

        monkeypatch.setattr(BinaryProvisioner, "_make_executable", staticmethod(deny))

        with pytest.raises(ProvisioningError, match="not usable"):
            provisioner.ensure(RAW_TOOL)

    @respx.mock
    def test_absent_binary_is_downloaded_once(self, provisioner):
        route = respx.get(TOOL_URL).mock(return_value=httpx.Response(200, content=PAYLOAD))

        path = provisioner.ensure(RAW_TOOL)

        assert route.call_count == 1
        assert path.read_bytes() == PAYLOAD
        assert os.access(path, os.X_OK)
        assert request_user_agent(route) == "Mozilla/5.0"

        provisioner.ensure(RAW_TOOL)
        assert route.call_count == 1

    @respx.mock
    def test_undersized_cache_is_replaced(self, provisioner):
        route = respx.get(TOOL_URL).mock(return_value=httpx.Response(200, content=PAYLOAD))
        target = provisioner.binary_path(RAW_TOOL)
        target.parent.mkdir(parents=True)
        target.write_bytes(b"partial")

        provisioner.ensure(RAW_TOOL)

        assert route.call_count == 1
        assert target.read_bytes() == PAYLOAD

    @respx.mock
    def test_zip_member_is_extracted(self, provisioner):
        tool = ToolSpec(
            name="xray",
            urls={"amd64": TOOL_URL},
            archive=ArchiveFormat.ZIP,
            member="xray",
        )
        archive = make_zip({"xray": PAYLOAD, "geoip.dat": b"geo", "README.md": b"readme"})
        respx.get(TOOL_URL).mock(return_value=httpx.Response(200, content=archive))

        path = provisioner.ensure(tool)

        assert path.name == "xray"
        assert path.read_bytes() == PAYLOAD
        assert sorted(p.name for p in path.parent.iterdir()) == ["xray"]

    @respx.mock
    def test_tar_member_is_extracted(self, provisioner):
        tool = ToolSpec(
            name="agent",
            urls={"amd64": TOOL_URL},
            archive=ArchiveFormat.TAR_GZ,
            member="agent",
        )
        archive = make_tar_gz({"dist/agent": PAYLOAD, "dist/LICENSE": b"license"})
        respx.get(TOOL_URL).mock(return_value=httpx.Response(200, content=archive))

        assert provisioner.ensure(tool).read_bytes() == PAYLOAD

    @respx.mock
    def test_missing_archive_member(self, provisioner):
        tool = ToolSpec(
            name="xray", urls={"amd64": TOOL_URL}, archive=ArchiveFormat.ZIP, member="xray"
        )
        respx.get(TOOL_URL).mock(
            return_value=httpx.Response(200, content=make_zip({"other": PAYLOAD}))
        )

        with pytest.raises(ProvisioningError, match="xray not found"):
            provisioner.ensure(tool)
        assert not provisioner.binary_path(tool).exists()

    @respx.mock
    def test_http_error_leaves_no_partial_file(self, provisioner):
        respx.get(TOOL_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(ProvisioningError, match="Failed to download tool"):
            provisioner.ensure(RAW_TOOL)
        assert list(provisioner.bin_dir.iterdir()) == []

    @respx.mock
    def test_connection_error(self, provisioner):
        respx.get(TOOL_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        with pytest.raises(ProvisioningError):
            provisioner.ensure(RAW_TOOL)

    @respx.mock
    def test_redirect_limit_per_tool(self, provisioner):
        hop1 = "https://downloads.example.com/latest"
        hop2 = "https://downloads.example.com/v2/tool"
        respx.get(TOOL_URL).mock(return_value=httpx.Response(302, headers={"Location": hop1}))
        respx.get(hop1).mock(return_value=httpx.Response(302, headers={"Location": hop2}))
        respx.get(hop2).mock(return_value=httpx.Response(200, content=PAYLOAD))

        strict = ToolSpec(name="strict", urls={"amd64": TOOL_URL}, max_redirects=1)
        with pytest.raises(ProvisioningError):
            provisioner.ensure(strict)

        relaxed = ToolSpec(name="relaxed", urls={"amd64": TOOL_URL}, max_redirects=2)
        assert provisioner.ensure(relaxed).read_bytes() == PAYLOAD

    def test_unsupported_architecture_makes_no_request(self, tmp_path):
        provisioner = BinaryProvisioner(tmp_path / "bin", arch="mips", min_size=1024)

        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(TOOL_URL).mock(return_value=httpx.Response(200, content=PAYLOAD))
            with pytest.raises(UnsupportedArchitectureError):
                provisioner.ensure(RAW_TOOL)

        assert not route.called


def request_user_agent(route):
    return route.calls.last.request.headers["User-Agent"]
