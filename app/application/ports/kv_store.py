from typing import Dict, Optional, Protocol, Sequence


class KeyValueStore(Protocol):
    """Shared ephemeral store with per-key expiry.

    Every method is a single atomic operation against the backing store;
    callers never compose read/modify/write sequences out of them. TTLs are
    in whole seconds.
    """

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> None:
        ...

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        ...

    def set_many(self, mapping: Dict[str, str], ttl: int, only_if_absent: bool = False) -> bool:
        """Write all keys with one TTL; with ``only_if_absent`` nothing is
        written when any key already exists."""
        ...

    def get_and_delete(self, key: str) -> Optional[str]:
        ...

    def compare_and_set(self, key: str, expected: str, value: str, delete_keys: Sequence[str] = ()) -> bool:
        """Replace ``key`` only if it currently holds ``expected``, keeping its
        TTL, and delete ``delete_keys`` in the same step."""
        ...

    def compare_and_delete(self, key: str, expected: str) -> bool:
        ...

    def incr(self, key: str, ttl: int) -> int:
        """Increment a counter; the TTL is applied only when the key is created."""
        ...

    def delete(self, *keys: str) -> int:
        ...

    def ttl(self, key: str) -> Optional[int]:
        ...

    def hset(self, key: str, field: str, value: str, ttl: int) -> None:
        ...

    def hget(self, key: str, field: str) -> Optional[str]:
        ...

    def hgetall(self, key: str) -> Dict[str, str]:
        ...
