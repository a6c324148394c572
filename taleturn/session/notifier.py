"""
Session Notifier - Tells subscribers a session changed.

Only the session id is published. Subscribers re-fetch whatever state
they need; deltas are never pushed.
"""

from __future__ import annotations
from typing import Callable
import logging
import threading

logger = logging.getLogger(__name__)

Subscriber = Callable[[str], None]


class SessionNotifier:
    """
    In-process publish hook.

    Usage:
        notifier = SessionNotifier()
        unsubscribe = notifier.subscribe(lambda session_id: ...)
        notifier.publish(session_id)
        unsubscribe()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, session_id: str):
        """Call every subscriber with the session id."""
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(session_id)
            except Exception:
                # Remaining subscribers still run
                logger.exception("Session change subscriber failed for %s", session_id)
