import hashlib
import json
import logging
import math
import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

import jwt

from ..ports.kv_store import KeyValueStore
from ...exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class TokenConfig:
    signing_secret: str
    access_ttl: int = 15 * 60
    refresh_ttl: int = 30 * 24 * 3600
    algorithm: str = "HS256"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: int

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }


@dataclass
class Claims:
    user_id: str
    token_id: str
    issued_at: int
    expires_at: int


@dataclass
class RefreshGrant:
    """Server-side record behind a refresh token."""

    user_id: str
    device_id: Optional[str] = None

    def dumps(self) -> str:
        return json.dumps({"user_id": self.user_id, "device_id": self.device_id})

    @classmethod
    def loads(cls, raw: str) -> "RefreshGrant":
        data = json.loads(raw)
        return cls(user_id=data["user_id"], device_id=data.get("device_id"))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass
class TokenService:
    store: KeyValueStore
    config: TokenConfig
    clock: Callable[[], float] = field(default=time.time)

    @staticmethod
    def _refresh_key(digest: str) -> str:
        return f"refresh:{digest}"

    @staticmethod
    def _blacklist_key(token_id: str) -> str:
        return f"blacklist:{token_id}"

    def generate(self, user_id: str, device_id: Optional[str] = None) -> TokenPair:
        now = int(self.clock())
        expires_at = now + self.config.access_ttl
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": expires_at,
            "jti": str(uuid.uuid4()),
            "type": "access",
        }
        access_token = jwt.encode(payload, self.config.signing_secret, algorithm=self.config.algorithm)

        refresh_token = secrets.token_urlsafe(32)
        grant = RefreshGrant(user_id=str(user_id), device_id=device_id)
        self.store.set(self._refresh_key(hash_token(refresh_token)), grant.dumps(), self.config.refresh_ttl)

        return TokenPair(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at)

    def _decode(self, token: str, verify_exp: bool = True) -> dict:
        return jwt.decode(
            token,
            self.config.signing_secret,
            algorithms=[self.config.algorithm],
            options={"require": ["sub", "iat", "exp", "jti"], "verify_exp": verify_exp, "verify_iat": False},
        )

    def validate(self, access_token: str) -> Claims:
        if not access_token:
            raise UnauthorizedError("invalid or expired token")
        try:
            payload = self._decode(access_token)
        except jwt.ExpiredSignatureError:
            logger.info("Access token has expired")
            raise UnauthorizedError("invalid or expired token")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Access token rejected: {e}")
            raise UnauthorizedError("invalid or expired token")

        if payload.get("type") != "access":
            raise UnauthorizedError("invalid token type")
        if payload["exp"] <= self.clock():
            raise UnauthorizedError("invalid or expired token")
        if self.store.get(self._blacklist_key(payload["jti"])) is not None:
            raise UnauthorizedError("token has been revoked")

        return Claims(
            user_id=payload["sub"],
            token_id=payload["jti"],
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )

    def owner_of(self, refresh_token: str) -> RefreshGrant:
        raw = self.store.get(self._refresh_key(hash_token(refresh_token or "")))
        if raw is None:
            raise UnauthorizedError("refresh token revoked or expired")
        return RefreshGrant.loads(raw)

    def refresh(self, refresh_token: str, device_id: Optional[str] = None) -> TokenPair:
        """Rotate ``refresh_token``; a device-bound token only rotates for its own device."""
        key = self._refresh_key(hash_token(refresh_token or ""))
        raw = self.store.get(key)
        if raw is None:
            raise UnauthorizedError("refresh token revoked or expired")
        grant = RefreshGrant.loads(raw)
        if grant.device_id != (device_id or None):
            logger.warning(f"Refresh token for user {grant.user_id} presented outside its device binding")
            raise UnauthorizedError("refresh token does not belong to this device")
        # A grant never changes after it is written, so the check above still
        # holds here; taking and deleting in one step redeems it exactly once
        if self.store.get_and_delete(key) is None:
            raise UnauthorizedError("refresh token revoked or expired")
        return self.generate(grant.user_id, device_id=grant.device_id)

    def revoke(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        if refresh_token:
            self.revoke_refresh_digest(hash_token(refresh_token))

        if access_token:
            try:
                payload = self._decode(access_token, verify_exp=False)
            except jwt.InvalidTokenError:
                return
            remaining = math.ceil(payload["exp"] - self.clock())
            if remaining > 0:
                self.store.set(self._blacklist_key(payload["jti"]), "1", remaining)

    def revoke_refresh_digest(self, digest: str) -> None:
        self.store.delete(self._refresh_key(digest))
