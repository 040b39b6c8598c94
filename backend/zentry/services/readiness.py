# Overview: One-shot readiness signal for collaborators that come up asynchronously.

"""
Readiness Gate

WHY: Callers used to poll "is the identity system ready yet" on a fixed
interval. The gate is resolved exactly once by whoever brings the dependency
up, and waiters block on it with a single timeout policy.
"""

import logging
import threading

from ..errors import DependencyUnavailableError

logger = logging.getLogger(__name__)


class ReadinessGate:
    def __init__(self, name: str, ready: bool = False):
        self.name = name
        self._event = threading.Event()
        if ready:
            self._event.set()

    @property
    def is_ready(self) -> bool:
        return self._event.is_set()

    def mark_ready(self) -> None:
        """Resolve the gate. Later calls are no-ops."""
        if not self._event.is_set():
            logger.info("%s is ready", self.name)
            self._event.set()

    def wait(self, timeout: float | None = None) -> None:
        """
        Return as soon as the gate is resolved.

        Raises DependencyUnavailableError if it is still unresolved after
        timeout seconds.
        """
        if self._event.wait(timeout):
            return
        logger.warning("%s not ready after %ss", self.name, timeout)
        raise DependencyUnavailableError(
            f"{self.name} is not available. Please try again later.",
            dependency=self.name,
        )
