"""Deferred cleanup and shutdown handling."""

import atexit
import signal
import sys
import threading
from collections.abc import Iterable
from pathlib import Path
from types import FrameType

from .common.logging import get_logger
from .process import ProcessSupervisor

logger = get_logger(__name__)

DEFAULT_GRACE_PERIOD = 90.0


class LifecycleScheduler:
    """Owns the one-shot cleanup timer and the shutdown hook."""

    def __init__(self, supervisor: ProcessSupervisor, grace_period: float = DEFAULT_GRACE_PERIOD):
        """Initialize LifecycleScheduler.

        Args:
            supervisor: Supervisor whose processes are stopped on shutdown
            grace_period: Delay before transient files are deleted, in seconds
        """
        self.supervisor = supervisor
        self.grace_period = grace_period
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._registered = False
        self._shutdown_done = False

    def schedule_cleanup(self, paths: Iterable[Path]) -> threading.Timer:
        """Delete ``paths`` once, after the grace period.

        A second call replaces the pending timer.

        Returns:
            The armed timer (daemon thread)
        """
        targets = list(paths)
        timer = threading.Timer(self.grace_period, self._cleanup, args=(targets,))
        timer.daemon = True

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = timer

        timer.start()
        logger.info(
            "Cleanup scheduled",
            delay=self.grace_period,
            files=[p.name for p in targets],
        )
        return timer

    def cancel_cleanup(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @staticmethod
    def _cleanup(paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
                logger.debug("Removed transient file", path=str(path))
            except OSError as e:
                logger.warning("Failed to remove transient file", path=str(path), error=str(e))

    def register_shutdown(self) -> None:
        """Register ``on_shutdown`` as a process-exit hook (idempotent).

        SIGTERM is turned into an orderly interpreter exit, which runs the
        hook, unless the host already installed its own SIGTERM handler.
        """
        with self._lock:
            if self._registered:
                return
            self._registered = True

        atexit.register(self.on_shutdown)

        if threading.current_thread() is not threading.main_thread():
            return
        try:
            if signal.getsignal(signal.SIGTERM) in (signal.SIG_DFL, None):
                signal.signal(signal.SIGTERM, self._handle_sigterm)
        except (ValueError, OSError) as e:
            logger.debug("SIGTERM handler not installed", error=str(e))

    @staticmethod
    def _handle_sigterm(signum: int, frame: FrameType | None) -> None:
        sys.exit(128 + signum)

    def on_shutdown(self) -> None:
        """Stop every supervised process. Runs at most once."""
        with self._lock:
            if self._shutdown_done:
                return
            self._shutdown_done = True

        logger.info("Shutting down supervised processes")
        self.supervisor.stop_all()
