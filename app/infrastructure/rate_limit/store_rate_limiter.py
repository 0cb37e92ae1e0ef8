from typing import Optional

from ...application.ports.kv_store import KeyValueStore
from ...application.ports.rate_limiter import RateLimiter


class StoreRateLimiter(RateLimiter):
    """Fixed-window counter kept in the shared ephemeral store."""

    def __init__(self, store: KeyValueStore, prefix: str = "rl:") -> None:
        self.store = store
        self.prefix = prefix

    def _key(self, key: str, window_seconds: int) -> str:
        return f"{self.prefix}{key}:{window_seconds}"

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        # INCR sets the window expiry on the first hit only
        count = self.store.incr(self._key(key, window_seconds), window_seconds)
        return int(count) <= int(max_requests)

    def retry_after(self, key: str, window_seconds: int) -> Optional[int]:
        return self.store.ttl(self._key(key, window_seconds))
