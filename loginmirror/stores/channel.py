"""
Event Channel — Explicit publish/subscribe for store mutation events.

Subscribers get a Subscription handle back and are responsible for
disposing of it. Nothing is held weakly; a handler stays registered until
its handle is disposed.

## Usage

    channel = EventChannel("primary")
    sub = channel.subscribe(handler)
    channel.publish(Added(record=r))
    sub.dispose()
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class Subscription:
    """Disposable handle for one registered handler."""

    def __init__(self, channel: "EventChannel", token: int, name: str = ""):
        self._channel = channel
        self.token = token
        self.name = name
        self._disposed = False

    @property
    def active(self) -> bool:
        return not self._disposed

    def dispose(self) -> None:
        """Unregister the handler. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._channel._remove(self.token)

    def __repr__(self) -> str:
        state = "active" if self.active else "disposed"
        return f"<Subscription {self.name or self.token} on {self._channel.name} ({state})>"


class EventChannel:
    """
    Ordered, synchronous event fan-out.

    publish() calls each handler in subscription order in the caller's
    thread. Handler errors are logged and never reach the publisher.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._handlers: Dict[int, Handler] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler, name: str = "") -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._handlers[token] = handler
        logger.debug(f"[{self.name}] subscribed {name or token}")
        return Subscription(self, token, name)

    def unsubscribe(self, subscription: Optional[Subscription]) -> None:
        if subscription is not None:
            subscription.dispose()

    def _remove(self, token: int) -> None:
        with self._lock:
            self._handlers.pop(token, None)
        logger.debug(f"[{self.name}] unsubscribed {token}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)

    def publish(self, event: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.items())

        for token, handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"[{self.name}] subscriber {token} failed: {e}")
