"""Best-effort publication of links to external services.

Every call here is fire-and-forget: errors are logged and reported to the
optional observer, never raised, and missing target configuration turns
the call into a no-op.
"""

import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from .common.logging import get_logger
from .subscription import SubscriptionDocument

if TYPE_CHECKING:
    from .settings import TunnelConfig

logger = get_logger(__name__)

PUBLISH_TIMEOUT = 10.0
LINK_LINE = re.compile(r"^\s*(vless|vmess|trojan)://\S+", re.IGNORECASE)

FailureObserver = Callable[[str, Exception], None]


def notify_observer(
    observer: FailureObserver | None, operation: str, error: Exception
) -> None:
    """Report a swallowed failure; an observer that raises is logged and ignored."""
    if observer is None:
        return
    try:
        observer(operation, error)
    except Exception as e:
        logger.debug("Failure observer raised", operation=operation, error=str(e))


def extract_links(content: str) -> list[str]:
    """Return every protocol link line of a plain subscription document."""
    return [line.strip() for line in content.splitlines() if LINK_LINE.match(line)]


class Publisher:
    """Pushes the subscription to a node registry and a keep-alive service."""

    def __init__(
        self,
        config: "TunnelConfig",
        client: httpx.Client | None = None,
        observer: FailureObserver | None = None,
    ):
        """Initialize Publisher.

        Args:
            config: Configuration record
            client: Optional httpx client (a short-lived one is created per call otherwise)
            observer: Called with (operation, exception) on every swallowed failure
        """
        self.config = config
        self._client = client
        self._observer = observer

    def publish(self, document: SubscriptionDocument) -> bool:
        """Register the subscription URL, or its individual nodes.

        Returns:
            True if a request was sent and accepted, False otherwise
        """
        if not self.config.upload_url:
            return False

        subscription_url = self.config.subscription_url
        if subscription_url:
            return self._post(
                "add-subscriptions",
                f"{self.config.upload_url}/api/add-subscriptions",
                {"subscription": [subscription_url]},
            )

        nodes = extract_links(document.content)
        if not nodes:
            return False
        return self._post(
            "add-nodes",
            f"{self.config.upload_url}/api/add-nodes",
            {"nodes": nodes},
        )

    def register_keepalive(self) -> bool:
        """Register the project URL with the keep-alive service.

        Returns:
            True if a request was sent and accepted, False otherwise
        """
        if not (self.config.auto_access and self.config.project_url):
            return False

        if not self.config.keepalive_url:
            logger.warning("Auto access enabled but no keep-alive endpoint configured")
            return False

        return self._post(
            "keepalive",
            self.config.keepalive_url,
            {"url": self.config.project_url},
        )

    def _post(self, operation: str, url: str, payload: dict[str, Any]) -> bool:
        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=PUBLISH_TIMEOUT)
            else:
                with httpx.Client(timeout=PUBLISH_TIMEOUT) as client:
                    response = client.post(url, json=payload)
            response.raise_for_status()
        except Exception as e:
            logger.warning("Publish failed", operation=operation, url=url, error=str(e))
            notify_observer(self._observer, operation, e)
            return False

        logger.info("Published", operation=operation, url=url, status=response.status_code)
        return True
