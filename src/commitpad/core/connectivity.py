"""Connectivity monitor for CommitPad.

Tracks online/offline transitions. The reconciliation engine subscribes
once and re-checks is_online() at the start of every mutating operation,
since connectivity can change between queuing and executing one.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import requests

logger = logging.getLogger(__name__)

__all__ = ["ConnectivityMonitor", "http_probe"]

Listener = Callable[[bool], None]


def http_probe(url: str = "https://api.github.com", timeout: float = 3.0) -> Callable[[], bool]:
    """Build a probe that reports whether url answers at all.

    Any HTTP response counts as online; only connection failures and
    timeouts count as offline.
    """

    def probe() -> bool:
        try:
            requests.head(url, timeout=timeout)
            return True
        except requests.RequestException:
            return False

    return probe


class ConnectivityMonitor:
    """Current online/offline state plus transition notifications.

    Attributes:
        online: Last observed state
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        initial: bool = True,
    ) -> None:
        """Initialize the monitor.

        Args:
            probe: Callable returning True when the remote is reachable.
                If None, the state only changes through set_online() and
                report_offline().
            initial: State assumed before the first probe
        """
        self.probe = probe
        self.online = initial
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for transitions.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def is_online(self) -> bool:
        """Probe now and return the current state."""
        if self.probe is not None:
            try:
                state = bool(self.probe())
            except Exception as e:
                logger.warning(f"Connectivity probe failed: {e}")
                state = False
            self.set_online(state)
        return self.online

    def set_online(self, online: bool) -> None:
        """Record a state, notifying listeners if it changed."""
        with self._lock:
            changed = online != self.online
            self.online = online
            listeners = list(self._listeners)

        if not changed:
            return

        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for listener in listeners:
            try:
                listener(online)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")

    def report_offline(self) -> None:
        """Record that a remote call failed for lack of network."""
        self.set_online(False)
