import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger("auth_events")

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"
PASSWORD_RECOVERY = "PASSWORD_RECOVERY"

Listener = Callable[[str, Optional[object]], None]


class Subscription:
    """Handle returned by ``AuthEventChannel.subscribe``."""

    def __init__(self, channel: "AuthEventChannel", token: int):
        self._channel = channel
        self._token = token
        self.active = True

    def unsubscribe(self) -> None:
        # Safe to call more than once
        if not self.active:
            return
        self.active = False
        self._channel._remove(self._token)


class AuthEventChannel:
    """
    Fan-out of auth state changes (sign-in, sign-out, token refresh).

    Listeners are called synchronously in subscription order. A listener that
    raises is logged and the remaining listeners still receive the event.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[int, Listener] = {}
        self._next_token = 0
        self._closed = False

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot subscribe to a closed auth event channel")
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = listener
        return Subscription(self, token)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def emit(self, event: str, session=None) -> int:
        """Deliver ``event`` to every listener; returns how many were called."""
        with self._lock:
            listeners = list(self._listeners.values())

        for listener in listeners:
            try:
                listener(event, session)
            except Exception as e:
                logger.exception(f"[emit] Listener failed on {event}: {e}")
        return len(listeners)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()
            self._closed = True
