import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger("storage_service")

# Fixed keys mirrored for each browser client
STORAGE_KEYS = {
    "SESSION": "clinicare_session",
    "USER_PROFILE": "clinicare_user_profile",
    "AUTH_STATE": "clinicare_auth_state",
}

# Where the auth provider client persists its own session
PROVIDER_SESSION_KEY = "clinicare_auth_token"

DEFAULT_TTL_SEC = 604800  # ≈7 days


def create_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(url, decode_responses=True)


class LocalStorage:
    """
    Key/value mirror of a browser's local storage, one namespace per client.

    Values are JSON. Every operation logs and swallows Redis errors so a
    storage outage degrades to "nothing cached" instead of breaking a page.
    """

    def __init__(self, client: redis.Redis, namespace: str, ttl_sec: int = DEFAULT_TTL_SEC):
        self.client = client
        self.namespace = namespace
        self.ttl_sec = ttl_sec

    def _key(self, key: str) -> str:
        return f"storage:{self.namespace}:{key}"

    def set(self, key: str, value: Any) -> bool:
        try:
            serialized = json.dumps(value, default=str)
            return bool(self.client.setex(self._key(key), self.ttl_sec, serialized))
        except Exception as e:
            logger.exception(f"[storage.set] Failed for {self.namespace}/{key}: {e}")
            return False

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except Exception as e:
            logger.exception(f"[storage.get] Failed for {self.namespace}/{key}: {e}")
            return None

        if not raw:
            return None

        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"[storage.get] Corrupted value for {self.namespace}/{key}, ignoring")
            return None

    def remove(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except Exception as e:
            logger.exception(f"[storage.remove] Failed for {self.namespace}/{key}: {e}")

    def clear(self) -> None:
        """Remove the application's auth keys, leaving the provider's own session."""
        for key in STORAGE_KEYS.values():
            self.remove(key)

    def clear_all(self) -> None:
        """Wipe everything stored for this client."""
        try:
            for key in self.client.scan_iter(self._key("*")):
                self.client.delete(key)
        except Exception as e:
            logger.exception(f"[storage.clear_all] Failed for {self.namespace}: {e}")
