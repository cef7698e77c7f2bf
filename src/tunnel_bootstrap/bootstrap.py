"""Tunnel bootstrap orchestrator.

Runs once while the host service starts: writes the proxy-core and tunnel
configuration, provisions and starts the child processes, resolves the
public hostname, builds and publishes the subscription, and arms the
deferred cleanup. Nothing in the pipeline may block or abort the host:
``run_safely()`` is the single boundary that absorbs every failure.
"""

import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from .common.exceptions import BinaryNotFoundError, ProcessError, ProvisioningError
from .common.logging import get_logger, setup_logging
from .common.utils import mask_sensitive_data, sanitize_log_data
from .geo import UNKNOWN_LABEL, lookup_label
from .installer import CLOUDFLARED, MONITOR_AGENT, XRAY, BinaryProvisioner, ToolSpec
from .lifecycle import LifecycleScheduler
from .process import ProcessSupervisor, Role, wait_for_port
from .proxy.config import generate_proxy_config, write_proxy_config
from .proxy.models import LOOPBACK_ADDR
from .publisher import FailureObserver, Publisher, notify_observer
from .settings import GENERATED_FILES, TunnelConfig, load_config
from .subscription import SubscriptionBuilder, SubscriptionDocument
from .tunnel.command import build_tunnel_command
from .tunnel.credentials import CredentialKind, TunnelCredential
from .tunnel.ingress import write_tunnel_files
from .tunnel.resolver import DomainResolver

logger = get_logger(__name__)

T = TypeVar("T")

MIN_PYTHON = (3, 10)
READY_TIMEOUT = 10.0


def check_runtime(
    min_version: tuple[int, int] = MIN_PYTHON,
    version_info: Sequence[int] | None = None,
) -> None:
    """Exit the process with status 1 on an unsupported interpreter.

    This is the only fatal check; it runs before any pipeline step.
    """
    current = tuple(version_info if version_info is not None else sys.version_info)[:2]
    if current < min_version:
        logger.critical(
            "Unsupported Python version",
            current=".".join(map(str, current)),
            required=".".join(map(str, min_version)),
        )
        sys.exit(1)


@dataclass
class BootstrapResult:
    """Outcome of one bootstrap run."""

    hostname: str | None = None
    subscription: SubscriptionDocument | None = None
    roles: list[Role] = field(default_factory=list)
    config_path: Path | None = None


class TunnelBootstrap:
    """Runs the bootstrap pipeline once."""

    def __init__(
        self,
        config: TunnelConfig,
        provisioner: BinaryProvisioner | None = None,
        supervisor: ProcessSupervisor | None = None,
        resolver: DomainResolver | None = None,
        publisher: Publisher | None = None,
        scheduler: LifecycleScheduler | None = None,
        label_lookup: Callable[[], str] = lookup_label,
        observer: FailureObserver | None = None,
        ready_timeout: float = READY_TIMEOUT,
    ):
        """Initialize TunnelBootstrap.

        Args:
            config: Configuration record
            provisioner: Binary provisioner (defaults to ``<workdir>/bin``)
            supervisor: Process supervisor
            resolver: Domain resolver (defaults to the tunnel log file)
            publisher: Link publisher
            scheduler: Lifecycle scheduler bound to ``supervisor``
            label_lookup: Returns the geolocation label for link names
            observer: Called with (operation, exception) for swallowed failures
            ready_timeout: How long to wait for the proxy core's port
        """
        self.config = config
        self.observer = observer
        self.provisioner = provisioner or BinaryProvisioner(config.file_path / "bin")
        self.supervisor = supervisor or ProcessSupervisor(output=config.process_output)
        self.resolver = resolver or DomainResolver(config.boot_log_path)
        self.publisher = publisher or Publisher(config, observer=observer)
        self.scheduler = scheduler or LifecycleScheduler(
            self.supervisor, grace_period=config.cleanup_delay
        )
        self.label_lookup = label_lookup
        self.ready_timeout = ready_timeout

    def run(self) -> BootstrapResult:
        """Execute the pipeline.

        Returns:
            BootstrapResult describing what was started and published

        Raises:
            BootstrapError: Or any other error of a pipeline step
        """
        config = self.config
        result = BootstrapResult()
        logger.info(
            "Tunnel bootstrap starting",
            **sanitize_log_data(
                {
                    "workdir": str(config.file_path),
                    "uuid": config.uuid,
                    "argo_auth": config.argo_auth,
                    "argo_domain": config.argo_domain,
                    "monitor_token": config.monitor_token,
                    "protocols": [p.value for p in config.protocol_ports],
                }
            ),
        )

        self.prepare_workdir()

        document = generate_proxy_config(config)
        if document is not None:
            result.config_path = write_proxy_config(document, config.config_path)

        credential = config.credential
        ingress_path = self._prepare_tunnel_files(credential)

        # Registered before any child exists so an early exit still reaps them.
        self.scheduler.register_shutdown()

        if config.monitor_enabled:
            self._start_monitor_agent()

        if document is not None:
            self._start_proxy_core()

        tunnel_started = self._start_tunnel_client(credential, ingress_path)
        result.roles = self.supervisor.roles

        static = bool(config.argo_domain and credential.is_present)
        ephemeral = tunnel_started and (
            credential.kind == CredentialKind.ABSENT
            or (credential.kind == CredentialKind.JSON and ingress_path is None)
        )
        if static or ephemeral:
            result.hostname = self.resolver.resolve(config.argo_domain, credential)

        if result.hostname and config.protocol_ports:
            result.subscription = self._build_subscription(result.hostname)
            self.publisher.publish(result.subscription)

        self.publisher.register_keepalive()

        self.scheduler.schedule_cleanup([config.config_path, config.boot_log_path])
        logger.info(
            "Tunnel bootstrap finished",
            roles=[r.value for r in result.roles],
            hostname=result.hostname,
        )
        return result

    def run_safely(self) -> BootstrapResult | None:
        """Execute the pipeline, absorbing any failure.

        Returns:
            BootstrapResult, or None if the pipeline failed
        """
        try:
            return self.run()
        except Exception as e:
            logger.exception("Tunnel bootstrap failed, continuing without it", error=str(e))
            self._notify("bootstrap", e)
            return None

    def prepare_workdir(self) -> None:
        """Create the working directory and drop artifacts of a previous run."""
        workdir = self.config.file_path
        workdir.mkdir(parents=True, exist_ok=True)
        for name in GENERATED_FILES:
            (workdir / name).unlink(missing_ok=True)

    def _prepare_tunnel_files(self, credential: TunnelCredential) -> Path | None:
        config = self.config
        if credential.malformed:
            logger.warning(
                "Tunnel credential not recognized, using an ephemeral tunnel",
                credential=mask_sensitive_data(credential.raw),
            )

        if credential.kind != CredentialKind.JSON:
            return None

        if not config.argo_domain or not config.tunnel_target_port:
            logger.warning("JSON tunnel credential needs a hostname, using an ephemeral tunnel")
            return None

        return write_tunnel_files(
            credential,
            config.argo_domain,
            config.tunnel_target_port,
            config.tunnel_credentials_path,
            config.ingress_path,
        )

    def _provision(self, role: Role, tool: ToolSpec) -> Path | None:
        try:
            return self.provisioner.ensure(tool)
        except ProvisioningError as e:
            logger.warning("Provisioning failed, role disabled", role=role.value, error=str(e))
            self._notify(f"provision:{role.value}", e)
            return None

    def _spawn(self, role: Role, command: list[str]) -> bool:
        try:
            self.supervisor.start(role, command, working_dir=self.config.file_path)
        except (ProcessError, BinaryNotFoundError) as e:
            logger.warning("Process start failed, role disabled", role=role.value, error=str(e))
            self._notify(f"start:{role.value}", e)
            return False
        return True

    def _start_monitor_agent(self) -> bool:
        binary = self._provision(Role.MONITOR_AGENT, MONITOR_AGENT)
        if binary is None:
            return False
        command = [
            str(binary),
            "-e",
            self.config.monitor_endpoint,
            "-t",
            self.config.monitor_token,
        ]
        return self._spawn(Role.MONITOR_AGENT, command)

    def _start_proxy_core(self) -> bool:
        binary = self._provision(Role.PROXY_CORE, XRAY)
        if binary is None:
            return False
        if not self._spawn(Role.PROXY_CORE, [str(binary), "run", "-c", str(self.config.config_path)]):
            return False

        port = self.config.tunnel_target_port
        if port and not wait_for_port(LOOPBACK_ADDR, port, timeout=self.ready_timeout):
            logger.warning("Proxy core not accepting connections yet", port=port)
        return True

    def _start_tunnel_client(self, credential: TunnelCredential, ingress_path: Path | None) -> bool:
        port = self.config.tunnel_target_port
        if credential.kind != CredentialKind.TOKEN and not port:
            logger.info("No local port to expose, tunnel client skipped")
            return False

        binary = self._provision(Role.TUNNEL_CLIENT, CLOUDFLARED)
        if binary is None:
            return False

        command = build_tunnel_command(
            binary,
            credential,
            port,
            ingress_path=ingress_path,
            log_path=self.config.boot_log_path,
        )
        return self._spawn(Role.TUNNEL_CLIENT, command)

    def _build_subscription(self, hostname: str) -> SubscriptionDocument:
        try:
            label = self.label_lookup()
        except Exception as e:
            logger.debug("Label lookup failed", error=str(e))
            label = UNKNOWN_LABEL

        builder = SubscriptionBuilder(self.config)
        document = builder.build(hostname, label)
        builder.persist(document, self.config.subscription_path)
        return document

    def _notify(self, operation: str, error: Exception) -> None:
        notify_observer(self.observer, operation, error)


def boot(
    host_main: Callable[[], T],
    config: TunnelConfig | None = None,
    env_file: str | Path | None = None,
    observer: FailureObserver | None = None,
) -> T:
    """Bootstrap the tunnel, then start the host service.

    The runtime check is fatal; everything after it is best effort and the
    host callable runs whatever the bootstrap outcome.

    Args:
        host_main: Host service entry point
        config: Configuration record (loaded from environment/file if None)
        env_file: Optional override file used when ``config`` is None
        observer: Called with (operation, exception) for swallowed failures

    Returns:
        Whatever ``host_main`` returns
    """
    check_runtime()

    try:
        if config is None:
            config = load_config(env_file)
        setup_logging(level=config.log_level)
        TunnelBootstrap(config, observer=observer).run_safely()
    except Exception as e:
        logger.exception("Tunnel bootstrap could not be initialized", error=str(e))
        notify_observer(observer, "bootstrap", e)

    return host_main()
