"""
Change notification channel
Callback registry with explicit subscription handles
"""

import logging
import threading
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Subscription:
    """Handle returned by EventChannel.subscribe.

    Can be used as a context manager so the listener is detached when the
    consumer goes away.
    """

    def __init__(self, channel: "EventChannel", listener: Listener):
        self._channel = channel
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self._listener)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class EventChannel:
    """Broadcasts events to subscribed listeners.

    Listeners are invoked synchronously in subscription order. A listener
    that raises is logged and does not prevent delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit(self, payload: Optional[Any] = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"Listener for '{self.name}' failed: {e}")
