"""Reverse OTP: the user proves phone ownership by *sending* a code.

``init_session`` hands the client a unique code and the business number to
message. The messaging platform later delivers the user's message to the
webhook, which calls ``handle_incoming_message``; meanwhile the client polls
``check_verification``. Both paths touch the same session record, so the
``pending -> verified`` transition is a single compare-and-set that also drops
the code index.
"""
import json
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..ports.kv_store import KeyValueStore
from ..ports.messaging_provider import MessagingProvider
from ...exceptions import InternalError, NotFoundError, RateLimitedError
from ...utils import mask_phone

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_VERIFIED = "verified"

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
MAX_CODE_CANDIDATES = 5


@dataclass
class ReverseOTPConfig:
    session_ttl: int = 300
    code_length: int = 6
    cooldown: int = 60
    max_code_attempts: int = 5
    confirmation_message: str = "Your phone number has been verified. You can return to the app."


@dataclass
class ReverseOTPSession:
    session_id: str
    target_number: str
    unique_code: str
    expires_at: datetime


@dataclass
class VerificationResult:
    status: str
    phone: Optional[str] = None


def generate_alphanumeric_code(length: int) -> str:
    # Codes always carry a digit so they stand out from ordinary words
    while True:
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if any(c.isdigit() for c in code):
            return code


def _canonical_phone(phone: str) -> str:
    return re.sub(r"[^\d+]", "", phone or "")


@dataclass
class ReverseOTPService:
    store: KeyValueStore
    messaging: MessagingProvider
    config: ReverseOTPConfig

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"rotp:session:{session_id}"

    @staticmethod
    def _code_key(code: str) -> str:
        return f"rotp:code:{code}"

    @staticmethod
    def _cooldown_key(phone: str) -> str:
        return f"rotp_cooldown:{phone}"

    def init_session(self, phone: str) -> ReverseOTPSession:
        cooldown_key = self._cooldown_key(phone)
        if not self.store.set_if_absent(cooldown_key, "1", self.config.cooldown):
            raise RateLimitedError(
                "please wait before requesting another session",
                retry_after=self.store.ttl(cooldown_key) or self.config.cooldown,
            )

        target_number = self.messaging.get_business_number()
        session_id = str(uuid.uuid4())
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.config.session_ttl)

        for _ in range(self.config.max_code_attempts):
            code = generate_alphanumeric_code(self.config.code_length)
            record = json.dumps({
                "session_id": session_id,
                "phone": phone,
                "target_number": target_number,
                "code": code,
                "status": STATUS_PENDING,
                "expires_at": expires_at.isoformat(),
            })
            # Session and code index live and die together; a code still held
            # by another live session makes the whole write a no-op
            written = self.store.set_many(
                {self._session_key(session_id): record, self._code_key(code): session_id},
                self.config.session_ttl,
                only_if_absent=True,
            )
            if written:
                logger.info(f"Reverse OTP session {session_id} opened for {mask_phone(phone)}")
                return ReverseOTPSession(
                    session_id=session_id,
                    target_number=target_number,
                    unique_code=code,
                    expires_at=expires_at,
                )
            logger.warning("Reverse OTP code collision, drawing a new code")

        raise InternalError("could not allocate a unique verification code")

    def _load(self, session_id: str) -> Optional[tuple]:
        raw = self.store.get(self._session_key(session_id))
        if raw is None:
            return None
        return raw, json.loads(raw)

    def check_verification(self, session_id: str) -> VerificationResult:
        loaded = self._load(session_id) if session_id else None
        if loaded is None:
            raise NotFoundError("session not found or expired")
        _, data = loaded
        if data.get("status") == STATUS_VERIFIED:
            return VerificationResult(status=STATUS_VERIFIED, phone=data["phone"])
        return VerificationResult(status=STATUS_PENDING)

    def extract_codes(self, text: str) -> List[str]:
        candidates: List[str] = []
        for token in re.findall(r"[A-Z0-9]+", (text or "").upper()):
            if len(token) != self.config.code_length or token in candidates:
                continue
            # Plain words of the right length are never codes
            if not any(c.isdigit() for c in token):
                continue
            candidates.append(token)
            if len(candidates) >= MAX_CODE_CANDIDATES:
                break
        return candidates


    def handle_incoming_message(self, from_phone: str, text: str) -> None:
        sender = _canonical_phone(from_phone)
        for code in self.extract_codes(text):
            session_id = self.store.get(self._code_key(code))
            if session_id is None:
                continue
            loaded = self._load(session_id)
            if loaded is None:
                continue
            raw, data = loaded
            if data.get("phone") != sender:
                logger.warning(
                    f"Reverse OTP code for session {session_id} sent from non-owner {mask_phone(sender)}"
                )
                continue
            if data.get("status") == STATUS_VERIFIED:
                return

            verified = dict(data, status=STATUS_VERIFIED)
            if self.store.compare_and_set(
                self._session_key(session_id),
                raw,
                json.dumps(verified),
                delete_keys=[self._code_key(code)],
            ):
                logger.info(f"Reverse OTP session {session_id} verified")
                self._confirm(sender)
            # A losing concurrent delivery already saw the winner's transition
            return

        raise NotFoundError("no pending session matches this message")

    def consume_verified(self, session_id: str) -> str:
        """Take a verified session out of the store; exactly one caller gets the phone."""
        loaded = self._load(session_id) if session_id else None
        if loaded is None:
            raise NotFoundError("session not found or expired")
        raw, data = loaded
        if data.get("status") != STATUS_VERIFIED:
            raise NotFoundError("session is not verified")
        if not self.store.compare_and_delete(self._session_key(session_id), raw):
            raise NotFoundError("session already used")
        return data["phone"]

    def _confirm(self, phone: str) -> None:
        try:
            self.messaging.send_message(phone, self.config.confirmation_message)
        except Exception as e:
            logger.warning(f"Could not send verification confirmation to {mask_phone(phone)}: {e}")
