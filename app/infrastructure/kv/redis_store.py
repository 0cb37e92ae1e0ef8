import logging
from contextlib import contextmanager
from typing import Dict, Optional, Sequence

import redis

from ...application.ports.kv_store import KeyValueStore
from ...exceptions import StoreError

logger = logging.getLogger(__name__)

# ARGV[1] = ttl, ARGV[2] = "1" for only-if-absent, ARGV[3..] = values
_SET_MANY = """
if ARGV[2] == '1' then
  for i = 1, #KEYS do
    if redis.call('EXISTS', KEYS[i]) == 1 then return 0 end
  end
end
for i = 1, #KEYS do
  redis.call('SET', KEYS[i], ARGV[i + 2], 'EX', tonumber(ARGV[1]))
end
return 1
"""

# KEYS[1] = target, KEYS[2..] = deleted with the swap
_COMPARE_AND_SET = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then return 0 end
redis.call('SET', KEYS[1], ARGV[2], 'KEEPTTL')
for i = 2, #KEYS do redis.call('DEL', KEYS[i]) end
return 1
"""

_COMPARE_AND_DELETE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then return redis.call('DEL', KEYS[1]) end
return 0
"""

_INCR_WITH_TTL = """
local n = redis.call('INCR', KEYS[1])
if n == 1 then redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1])) end
return n
"""


class RedisStore(KeyValueStore):
    def __init__(self, url: Optional[str] = None, socket_timeout: float = 2.0, client: Optional[redis.Redis] = None) -> None:
        if client is None:
            if not url:
                raise RuntimeError("Redis URL not configured")
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self.client = client
        self._set_many = self.client.register_script(_SET_MANY)
        self._cas = self.client.register_script(_COMPARE_AND_SET)
        self._cad = self.client.register_script(_COMPARE_AND_DELETE)
        self._incr = self.client.register_script(_INCR_WITH_TTL)

    @contextmanager
    def _translate(self, op: str):
        try:
            yield
        except redis.RedisError as e:
            logger.error(f"Redis {op} failed: {e}")
            raise StoreError(f"store {op} failed") from e

    def ping(self) -> bool:
        with self._translate("ping"):
            return bool(self.client.ping())

    def get(self, key: str) -> Optional[str]:
        with self._translate("get"):
            return self.client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._translate("set"):
            self.client.set(key, value, ex=ttl)

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        with self._translate("set_if_absent"):
            return bool(self.client.set(key, value, ex=ttl, nx=True))

    def set_many(self, mapping: Dict[str, str], ttl: int, only_if_absent: bool = False) -> bool:
        keys = list(mapping.keys())
        args = [ttl, "1" if only_if_absent else "0"] + [mapping[k] for k in keys]
        with self._translate("set_many"):
            return int(self._set_many(keys=keys, args=args)) == 1

    def get_and_delete(self, key: str) -> Optional[str]:
        with self._translate("get_and_delete"):
            return self.client.getdel(key)

    def compare_and_set(self, key: str, expected: str, value: str, delete_keys: Sequence[str] = ()) -> bool:
        with self._translate("compare_and_set"):
            return int(self._cas(keys=[key, *delete_keys], args=[expected, value])) == 1

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._translate("compare_and_delete"):
            return int(self._cad(keys=[key], args=[expected])) == 1

    def incr(self, key: str, ttl: int) -> int:
        with self._translate("incr"):
            return int(self._incr(keys=[key], args=[ttl]))

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with self._translate("delete"):
            return int(self.client.delete(*keys))

    def ttl(self, key: str) -> Optional[int]:
        with self._translate("ttl"):
            remaining = int(self.client.ttl(key))
        # -2 missing key, -1 no expiry
        return remaining if remaining >= 0 else None

    def hset(self, key: str, field: str, value: str, ttl: int) -> None:
        with self._translate("hset"):
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(key, field, value)
            pipe.expire(key, ttl)
            pipe.execute()

    def hget(self, key: str, field: str) -> Optional[str]:
        with self._translate("hget"):
            return self.client.hget(key, field)

    def hgetall(self, key: str) -> Dict[str, str]:
        with self._translate("hgetall"):
            return dict(self.client.hgetall(key))
