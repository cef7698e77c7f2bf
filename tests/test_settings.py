"""Tests for layered configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tunnel_bootstrap.common.exceptions import ConfigurationError
from tunnel_bootstrap.proxy.models import Protocol
from tunnel_bootstrap.settings import TunnelConfig, load_config
from tunnel_bootstrap.tunnel.credentials import CredentialKind


class TestDefaults:
    """Built-in defaults."""

    def test_default_values(self):
        config = load_config()

        assert config.file_path == Path(".tunnel").absolute()
        assert config.sub_path == "sub"
        assert config.argo_port == 8001
        assert config.fallback_port == 3001
        assert config.vless_port == 3002
        assert config.vmess_port == 3003
        assert config.trojan_port == 3004
        assert config.cfport == 443
        assert config.cfip == ""
        assert config.argo_auth == ""
        assert config.upload_url == ""
        assert config.auto_access is False
        assert config.cleanup_delay == 90.0
        assert config.process_output == "discard"

    def test_default_uuid_is_random_and_valid(self):
        first = load_config()
        second = load_config()

        assert len(first.uuid) == 36
        assert first.uuid != second.uuid

    def test_config_is_frozen(self):
        config = load_config()
        with pytest.raises(ValidationError):
            config.argo_port = 9000  # type: ignore[misc]


class TestLayering:
    """defaults < environment < override file."""

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("ARGO_PORT", "9000")
        monkeypatch.setenv("NAME", "edge")

        config = load_config()

        assert config.argo_port == 9000
        assert config.name == "edge"

    def test_override_file_beats_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ARGO_PORT", "9000")
        monkeypatch.setenv("CFIP", "from-env.example.com")
        env_file = tmp_path / ".env"
        env_file.write_text("ARGO_PORT=9100\nSUB_PATH=feed\n")

        config = load_config(env_file=env_file)

        assert config.argo_port == 9100
        assert config.sub_path == "feed"
        assert config.cfip == "from-env.example.com"

    def test_missing_override_file_is_ignored(self, tmp_path):
        config = load_config(env_file=tmp_path / "absent.env")
        assert config.argo_port == 8001

    def test_unknown_names_are_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SOMETHING_ELSE", "1")
        env_file = tmp_path / ".env"
        env_file.write_text("NOT_A_SETTING=yes\nVLESS_PORT=4000\n")

        config = load_config(env_file=env_file)

        assert config.vless_port == 4000
        assert not hasattr(config, "not_a_setting")

    def test_blank_environment_value_keeps_default(self, monkeypatch):
        monkeypatch.setenv("ARGO_PORT", "")
        assert load_config().argo_port == 8001

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("ARGO_PORT", "9000")
        assert load_config(argo_port=0).argo_port == 0


class TestValidation:
    """Invalid values surface as ConfigurationError."""

    def test_invalid_port(self, monkeypatch):
        monkeypatch.setenv("VLESS_PORT", "70000")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_invalid_uuid(self):
        with pytest.raises(ConfigurationError, match="UUID"):
            load_config(uuid="not-a-uuid")

    def test_sub_path_slashes_are_stripped(self):
        assert load_config(sub_path="/feed/").sub_path == "feed"

    def test_empty_sub_path_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config(sub_path="/")

    def test_trailing_slash_removed_from_urls(self):
        config = load_config(upload_url="https://merge.example.com/")
        assert config.upload_url == "https://merge.example.com"

    def test_multiplexing_requires_fallback_port(self):
        with pytest.raises(ConfigurationError, match="FALLBACK_PORT"):
            load_config(fallback_port=0)
        assert load_config(argo_port=0, fallback_port=0).fallback_port == 0

    def test_relative_file_path_made_absolute(self):
        assert load_config(file_path="work").file_path.is_absolute()

    def test_log_level_normalized(self):
        assert load_config(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ConfigurationError):
            load_config(log_level="chatty")


class TestDerivedValues:
    """Properties computed from the record."""

    def test_protocol_ports_in_fixed_order(self, make_config):
        config = make_config(trojan_port=5003, vless_port=5001, vmess_port=5002)

        assert list(config.protocol_ports) == [Protocol.VLESS, Protocol.VMESS, Protocol.TROJAN]

    def test_zero_port_disables_protocol(self, make_config):
        config = make_config(vmess_port=0)
        assert Protocol.VMESS not in config.protocol_ports

    def test_tunnel_target_port(self, make_config):
        assert make_config().tunnel_target_port == 8001
        assert make_config(argo_port=0).tunnel_target_port == 3002
        assert make_config(argo_port=0, vless_port=0).tunnel_target_port == 3003
        assert (
            make_config(argo_port=0, vless_port=0, vmess_port=0, trojan_port=0).tunnel_target_port
            == 0
        )
        assert make_config(vless_port=0, vmess_port=0, trojan_port=0).tunnel_target_port == 0

    def test_paths_under_workdir(self, make_config, tmp_path):
        config = make_config()
        workdir = tmp_path / "work"

        assert config.config_path == workdir / "config.json"
        assert config.boot_log_path == workdir / "boot.log"
        assert config.subscription_path == workdir / "sub.txt"
        assert config.tunnel_credentials_path == workdir / "tunnel.json"
        assert config.ingress_path == workdir / "tunnel.yml"

    def test_subscription_url(self, make_config):
        assert make_config().subscription_url is None
        config = make_config(project_url="https://app.example.com/", sub_path="feed")
        assert config.subscription_url == "https://app.example.com/feed"

    def test_node_name(self, make_config):
        assert make_config().node_name("US_Org") == "US_Org"
        assert make_config(name="edge").node_name("US_Org") == "edge-US_Org"

    def test_credential_kind(self, make_config, tunnel_token):
        assert make_config().credential.kind == CredentialKind.ABSENT
        assert make_config(argo_auth=tunnel_token).credential.kind == CredentialKind.TOKEN

    def test_monitor_requires_endpoint_and_token(self, make_config):
        assert not make_config(monitor_endpoint="https://mon.example.com").monitor_enabled
        assert make_config(
            monitor_endpoint="https://mon.example.com", monitor_token="t"
        ).monitor_enabled

    def test_direct_construction(self, tmp_path):
        config = TunnelConfig(file_path=tmp_path, argo_port=0)
        assert not config.multiplexed
