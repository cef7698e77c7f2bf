"""Supervision of the external child processes."""

import os
import socket
import subprocess
import threading
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Literal

from .common.exceptions import BinaryNotFoundError, ProcessError
from .common.logging import get_logger
from .common.utils import poll_until

logger = get_logger(__name__)

OutputSink = Literal["discard", "inherit"]


class Role(str, Enum):
    """Logical role of a supervised child process."""

    PROXY_CORE = "proxy-core"
    TUNNEL_CLIENT = "tunnel-client"
    MONITOR_AGENT = "monitor-agent"


class ManagedProcess:
    """One child process tagged with its role."""

    def __init__(self, role: Role, process: subprocess.Popen[bytes], command: Sequence[str]):
        self.role = role
        self.command = list(command)
        self._process: subprocess.Popen[bytes] | None = process

    def is_running(self) -> bool:
        """Check if process is currently running"""
        if self._process is None:
            return False

        return self._process.poll() is None

    @property
    def pid(self) -> int | None:
        """Get process ID if running"""
        if self.is_running() and self._process:
            return self._process.pid
        return None

    @property
    def returncode(self) -> int | None:
        if self._process is None:
            return None
        return self._process.returncode

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop the process gracefully, force killing it after ``timeout``.

        Returns:
            True if stopped (or already exited), False otherwise
        """
        if not self.is_running():
            logger.debug("Process not running, nothing to stop", role=self.role.value)
            self._process = None
            return True

        if self._process is None:
            return True

        logger.info("Stopping process", role=self.role.value, pid=self._process.pid)
        try:
            self._process.terminate()
            try:
                self._process.wait(timeout=timeout)
                logger.info("Process terminated gracefully", role=self.role.value)
            except subprocess.TimeoutExpired:
                logger.warning(
                    "Process did not terminate gracefully, force killing",
                    role=self.role.value,
                    pid=self._process.pid,
                )
                self._process.kill()
                try:
                    self._process.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    logger.error("Failed to kill process", role=self.role.value)

            self._process = None
            return True
        except Exception as e:
            logger.error("Error stopping process", role=self.role.value, error=str(e))
            self._process = None
            return False


class ProcessSupervisor:
    """Starts child processes by role and stops all of them on shutdown.

    No restart policy: a child that exits on its own stays exited and is
    only reaped by ``stop_all()``.
    """

    def __init__(self, output: OutputSink = "discard"):
        """Initialize ProcessSupervisor.

        Args:
            output: Where child stdout/stderr go ("discard" or "inherit")
        """
        self.output = output
        self._processes: dict[Role, ManagedProcess] = {}
        self._lock = threading.Lock()

    def start(
        self,
        role: Role,
        command: Sequence[str],
        working_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ManagedProcess:
        """Spawn a child process for ``role``.

        Args:
            role: Logical role of the process
            command: Argument vector; the first item is the executable
            working_dir: Working directory for the child
            env: Extra environment variables merged over the current environment

        Returns:
            ManagedProcess handle

        Raises:
            BinaryNotFoundError: If the executable is missing or not executable
            ProcessError: If the role is already running or spawning fails
        """
        if not command:
            raise ProcessError(f"Empty command for {role.value}")

        binary = Path(command[0])
        if not binary.is_file():
            raise BinaryNotFoundError(f"Binary not found: {binary}")
        if not os.access(binary, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {binary}")

        with self._lock:
            existing = self._processes.get(role)
            if existing is not None and existing.is_running():
                raise ProcessError(f"{role.value} is already running (pid {existing.pid})")

            child_env = None
            if env:
                child_env = {**os.environ, **env}

            stdout = subprocess.DEVNULL if self.output == "discard" else None
            logger.info("Starting process", role=role.value, binary=str(binary))
            try:
                process = subprocess.Popen(
                    list(command),
                    cwd=str(working_dir) if working_dir else None,
                    env=child_env,
                    stdin=subprocess.DEVNULL,
                    stdout=stdout,
                    stderr=subprocess.STDOUT,
                )
            except OSError as e:
                logger.error("Failed to start process", role=role.value, error=str(e))
                raise ProcessError(f"Failed to start {role.value}: {e}") from e

            managed = ManagedProcess(role, process, command)
            self._processes[role] = managed

        logger.info("Process started", role=role.value, pid=process.pid)
        return managed

    def is_running(self, role: Role) -> bool:
        with self._lock:
            managed = self._processes.get(role)
        return managed is not None and managed.is_running()

    @property
    def roles(self) -> list[Role]:
        """Roles started so far, in start order."""
        with self._lock:
            return list(self._processes)

    def stop_all(self) -> None:
        """Stop every tracked process, most recently started first.

        Safe to call when nothing was started, when some roles never
        started, or when children already exited.
        """
        with self._lock:
            processes = list(self._processes.values())
            self._processes.clear()

        for managed in reversed(processes):
            try:
                managed.stop()
            except Exception as e:
                logger.error("Error during shutdown", role=managed.role.value, error=str(e))


def port_accepts(host: str, port: int, timeout: float = 0.5) -> bool:
    """Check whether a TCP port accepts connections."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(
    host: str,
    port: int,
    timeout: float = 10.0,
    initial_interval: float = 0.1,
    max_interval: float = 1.0,
) -> bool:
    """Wait until ``host:port`` accepts TCP connections.

    Args:
        host: Address to probe
        port: Port to probe
        timeout: Overall deadline in seconds
        initial_interval: First wait between probes
        max_interval: Upper bound for a single wait

    Returns:
        True if the port became ready, False on timeout
    """
    ready = poll_until(
        lambda: True if port_accepts(host, port) else None,
        timeout=timeout,
        initial_interval=initial_interval,
        max_interval=max_interval,
    )
    if ready:
        logger.debug("Port ready", host=host, port=port)
        return True

    logger.warning("Port not ready before deadline", host=host, port=port, timeout=timeout)
    return False
