import threading
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ...application.ports.kv_store import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Process-local store for development and tests.

    One lock serializes every primitive, which gives the same atomicity the
    Redis adapter gets from single commands and Lua scripts.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    # -- helpers (caller holds the lock) --

    def _live(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl: int) -> float:
        return self._clock() + ttl

    def _string(self, key: str) -> Optional[str]:
        entry = self._live(key)
        if entry is None:
            return None
        value = entry[0]
        return value if isinstance(value, str) else None

    # -- KeyValueStore --

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._string(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._data[key] = (value, self._expiry(ttl))

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl))
            return True

    def set_many(self, mapping: Dict[str, str], ttl: int, only_if_absent: bool = False) -> bool:
        with self._lock:
            if only_if_absent and any(self._live(k) is not None for k in mapping):
                return False
            expires_at = self._expiry(ttl)
            for k, v in mapping.items():
                self._data[k] = (v, expires_at)
            return True

    def get_and_delete(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._string(key)
            if value is not None:
                del self._data[key]
            return value

    def compare_and_set(self, key: str, expected: str, value: str, delete_keys: Sequence[str] = ()) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[0] != expected:
                return False
            self._data[key] = (value, entry[1])
            for k in delete_keys:
                self._data.pop(k, None)
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._string(key) != expected:
                return False
            del self._data[key]
            return True

    def incr(self, key: str, ttl: int) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self._data[key] = ("1", self._expiry(ttl))
                return 1
            count = int(entry[0]) + 1
            self._data[key] = (str(count), entry[1])
            return count

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for k in keys:
                if self._live(k) is not None:
                    del self._data[k]
                    removed += 1
        return removed

    def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(int(round(entry[1] - self._clock())), 0)

    def hset(self, key: str, field: str, value: str, ttl: int) -> None:
        with self._lock:
            entry = self._live(key)
            fields = dict(entry[0]) if entry is not None and isinstance(entry[0], dict) else {}
            fields[field] = value
            self._data[key] = (fields, self._expiry(ttl))

    def hget(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            if entry is None or not isinstance(entry[0], dict):
                return None
            return entry[0].get(field)

    def hgetall(self, key: str) -> Dict[str, str]:
        with self._lock:
            entry = self._live(key)
            if entry is None or not isinstance(entry[0], dict):
                return {}
            return dict(entry[0])
