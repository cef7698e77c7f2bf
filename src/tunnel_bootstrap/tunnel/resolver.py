"""Resolution of the tunnel's externally reachable hostname."""

import re
import time
from collections.abc import Callable
from pathlib import Path

from ..common.logging import get_logger
from ..common.utils import poll_until
from .credentials import TunnelCredential

logger = get_logger(__name__)

EPHEMERAL_HOST_PATTERN = re.compile(r"https?://([A-Za-z0-9.-]*trycloudflare\.com)/?")

# Hosts matching the pattern that belong to the provider, not to this tunnel.
PROVIDER_HOSTS = frozenset({"api.trycloudflare.com"})


def extract_ephemeral_host(text: str) -> str | None:
    """Return the first assigned ephemeral hostname found in log text."""
    for match in EPHEMERAL_HOST_PATTERN.finditer(text):
        host = match.group(1)
        if host not in PROVIDER_HOSTS and host != "trycloudflare.com":
            return host
    return None


class DomainResolver:
    """Resolves the hostname either statically or from the tunnel client's log."""

    def __init__(
        self,
        log_path: Path,
        timeout: float = 30.0,
        initial_interval: float = 0.5,
        max_interval: float = 4.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize DomainResolver.

        Args:
            log_path: Log file written by the ephemeral tunnel client
            timeout: Overall deadline for log polling in seconds
            initial_interval: First wait between log reads
            max_interval: Upper bound for a single wait
            sleep: Sleep function (injectable for tests)
        """
        self.log_path = log_path
        self.timeout = timeout
        self.initial_interval = initial_interval
        self.max_interval = max_interval
        self._sleep = sleep

    def resolve(self, static_domain: str, credential: TunnelCredential) -> str | None:
        """Resolve the externally reachable hostname.

        Args:
            static_domain: Configured tunnel hostname (blank for ephemeral)
            credential: Tunnel credential

        Returns:
            Hostname, or None when the log never showed one
        """
        if static_domain and credential.is_present:
            logger.info("Using static tunnel hostname", hostname=static_domain)
            return static_domain

        host = poll_until(
            self._scan_log,
            timeout=self.timeout,
            initial_interval=self.initial_interval,
            max_interval=self.max_interval,
            sleep=self._sleep,
        )

        if host is None:
            logger.warning(
                "Ephemeral tunnel hostname not found",
                path=str(self.log_path),
                timeout=self.timeout,
            )
        else:
            logger.info("Ephemeral tunnel hostname resolved", hostname=host)
        return host

    def _scan_log(self) -> str | None:
        text = self._read_log()
        if text is None:
            return None
        return extract_ephemeral_host(text)

    def _read_log(self) -> str | None:
        try:
            return self.log_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            logger.debug("Tunnel log not present yet", path=str(self.log_path))
            return None
        except OSError as e:
            logger.warning("Tunnel log not readable", path=str(self.log_path), error=str(e))
            return None
