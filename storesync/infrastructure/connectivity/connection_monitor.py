"""Connection state monitor.

Holds the process' online/offline flag and notifies subscribers on every
discrete transition. The monitor never polls: whatever observes the
environment's connectivity signal calls `set_online()` (or the
`handle_online()` / `handle_offline()` shortcuts).
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[bool], None]


class Subscription:
    """Handle returned by `ConnectionMonitor.on_change`.

    Call `unsubscribe()` (or leave the `with` block) when the owner is
    discarded so the listener does not leak. Unsubscribing twice is a no-op.
    """

    def __init__(self, monitor: "ConnectionMonitor", callback: ConnectionCallback):
        self._monitor: Optional[ConnectionMonitor] = monitor
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._monitor is not None

    def unsubscribe(self) -> None:
        if self._monitor is not None:
            self._monitor._remove(self)
            self._monitor = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class ConnectionMonitor:
    """Two-state (online/offline) monitor with ordered, synchronous notifications."""

    def __init__(self, initially_online: bool = True):
        self._online = initially_online
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        logger.info(f"ConnectionMonitor initialized: {'online' if initially_online else 'offline'}")

    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectionCallback) -> Subscription:
        """Registers `callback(is_online)`; called in registration order."""
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def set_online(self, online: bool) -> bool:
        """Applies an environment connectivity signal.

        Returns:
            True if the state changed (and subscribers were notified).
        """
        with self._lock:
            if self._online == online:
                return False
            self._online = online
            subscribers = list(self._subscriptions)

        if online:
            logger.info("Connection restored")
        else:
            logger.warning("Connection lost - offline mode activated")

        for subscription in subscribers:
            try:
                subscription.callback(online)
            except Exception as e:
                # One bad listener must not starve the ones registered after it
                logger.error(f"Connection listener {subscription.callback!r} failed: {e}", exc_info=True)
        return True

    def handle_online(self) -> bool:
        return self.set_online(True)

    def handle_offline(self) -> bool:
        return self.set_online(False)
