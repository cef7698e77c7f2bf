"""Shared pytest fixtures for tunnel bootstrap tests."""

from unittest.mock import Mock

import pytest

from tunnel_bootstrap.settings import TunnelConfig

TEST_UUID = "11111111-1111-1111-1111-111111111111"

# 120+ characters of the token alphabet
TEST_TOKEN = "eyJhIjoiMTIzNDU2Nzg5MCIsInQiOiJhYmNkZWYiLCJzIjoiWFlaIn0" * 3


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep configuration values in the developer's environment out of tests."""
    for name in TunnelConfig.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_config(tmp_path):
    """Build a TunnelConfig rooted in a temporary working directory.

    Returns:
        Callable: Factory accepting field overrides
    """

    def factory(**overrides):
        values = {"uuid": TEST_UUID, "file_path": tmp_path / "work"}
        values.update(overrides)
        return TunnelConfig(**values)

    return factory


@pytest.fixture
def fake_binary(tmp_path):
    """Create an executable placeholder binary.

    Returns:
        Path: Path to the executable file
    """
    binary = tmp_path / "bin" / "tool"
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_text("#!/bin/sh\nexit 0\n")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def mock_process():
    """Create a mock process object for testing.

    Returns:
        Mock: Mock process with common attributes
    """
    process = Mock()
    process.pid = 12345
    process.poll.return_value = None  # Process is running
    process.terminate.return_value = None
    process.kill.return_value = None
    process.wait.return_value = 0
    process.returncode = None
    return process


@pytest.fixture
def mock_subprocess(monkeypatch, mock_process):
    """Mock subprocess.Popen for testing process management.

    Returns:
        Mock: Mocked Popen class returning ``mock_process``
    """
    mock_popen = Mock(return_value=mock_process)
    monkeypatch.setattr("subprocess.Popen", mock_popen)
    return mock_popen


@pytest.fixture
def tunnel_token():
    """A connector token of valid shape."""
    return TEST_TOKEN


@pytest.fixture
def json_credential():
    """A JSON tunnel secret blob."""
    return (
        '{"AccountTag":"acct","TunnelSecret":"c2VjcmV0",'
        '"TunnelID":"6ff42ae2-765d-4adf-8112-31c55c1551ef"}'
    )
