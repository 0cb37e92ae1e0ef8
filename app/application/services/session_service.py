import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..ports.kv_store import KeyValueStore
from .token_service import TokenService, hash_token
from ...exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class DeviceSession:
    device_id: str
    token_hash: str
    last_seen_at: int


@dataclass
class SessionService:
    """Binds each user's devices to the refresh token currently valid on them."""

    store: KeyValueStore
    session_ttl: int
    token_service: Optional[TokenService] = None
    clock: Callable[[], float] = field(default=time.time)

    @staticmethod
    def _key(user_id: str) -> str:
        return f"device_sessions:{user_id}"

    def _write(self, user_id: str, device_id: str, token_hash: str) -> None:
        entry = json.dumps({"token_hash": token_hash, "last_seen_at": int(self.clock())})
        self.store.hset(self._key(user_id), device_id, entry, self.session_ttl)

    def register(self, user_id: str, device_id: str, refresh_token: str) -> None:
        key = self._key(user_id)
        new_hash = hash_token(refresh_token)
        previous = self.store.hget(key, device_id)

        self._write(user_id, device_id, new_hash)

        if previous and self.token_service is not None:
            old_hash = json.loads(previous).get("token_hash")
            if old_hash and old_hash != new_hash:
                logger.info(f"Revoking superseded refresh token for user {user_id} device {device_id}")
                self.token_service.revoke_refresh_digest(old_hash)

    def validate(self, user_id: str, device_id: str, refresh_token: str) -> None:
        raw = self.store.hget(self._key(user_id), device_id)
        if raw is None:
            raise UnauthorizedError("no active session for this device")
        stored_hash = json.loads(raw).get("token_hash", "")
        if not hmac.compare_digest(stored_hash, hash_token(refresh_token or "")):
            raise UnauthorizedError("refresh token does not belong to this device")
        self._write(user_id, device_id, stored_hash)

    def invalidate(self, user_id: str) -> None:
        """Sign the user out everywhere: every bound refresh token dies with its binding."""
        key = self._key(user_id)
        if self.token_service is not None:
            for raw in self.store.hgetall(key).values():
                token_hash = json.loads(raw).get("token_hash")
                if token_hash:
                    self.token_service.revoke_refresh_digest(token_hash)
        self.store.delete(key)
        logger.info(f"All device sessions invalidated for user {user_id}")

    def list_devices(self, user_id: str) -> List[DeviceSession]:
        devices = []
        for device_id, raw in self.store.hgetall(self._key(user_id)).items():
            data = json.loads(raw)
            devices.append(DeviceSession(
                device_id=device_id,
                token_hash=data.get("token_hash", ""),
                last_seen_at=int(data.get("last_seen_at", 0)),
            ))
        return sorted(devices, key=lambda d: d.last_seen_at, reverse=True)
