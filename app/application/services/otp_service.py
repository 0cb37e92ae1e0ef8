import hmac
import logging
import secrets
from dataclasses import dataclass

from ..ports.kv_store import KeyValueStore
from ..ports.rate_limiter import RateLimiter
from ..ports.sms_provider import SMSProvider
from ...exceptions import AppError, InternalError, RateLimitedError, UnauthorizedError
from ...utils import mask_phone

logger = logging.getLogger(__name__)

HOUR = 3600


@dataclass
class OTPConfig:
    code_length: int = 6
    ttl: int = 300
    max_attempts: int = 3
    resend_cooldown: int = 60
    max_per_hour: int = 5


def generate_numeric_code(length: int) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


@dataclass
class OTPService:
    store: KeyValueStore
    sms: SMSProvider
    rate_limiter: RateLimiter
    config: OTPConfig

    @staticmethod
    def _otp_key(phone: str) -> str:
        return f"otp:{phone}"

    @staticmethod
    def _attempts_key(phone: str) -> str:
        return f"otp_attempts:{phone}"

    @staticmethod
    def _cooldown_key(phone: str) -> str:
        return f"otp_cooldown:{phone}"

    def generate(self, phone: str) -> str:
        """Issue a fresh code for ``phone`` and deliver it by SMS."""
        cooldown_key = self._cooldown_key(phone)
        if not self.store.set_if_absent(cooldown_key, "1", self.config.resend_cooldown):
            logger.info(f"OTP resend cooldown active for {mask_phone(phone)}")
            raise RateLimitedError(
                "please wait before requesting another OTP",
                retry_after=self.store.ttl(cooldown_key) or self.config.resend_cooldown,
            )

        send_key = f"otp_send:{phone}"
        if not self.rate_limiter.allow(send_key, self.config.max_per_hour, HOUR):
            logger.warning(f"Hourly OTP limit reached for {mask_phone(phone)}")
            raise RateLimitedError(
                "too many OTP requests",
                retry_after=self.rate_limiter.retry_after(send_key, HOUR),
            )

        code = generate_numeric_code(self.config.code_length)
        # Code and a zeroed attempt counter replace any previous record together
        self.store.set_many(
            {self._otp_key(phone): code, self._attempts_key(phone): "0"},
            self.config.ttl,
        )

        try:
            self.sms.send(phone, f"Your verification code is: {code}")
        except AppError:
            raise
        except Exception as e:
            logger.error(f"SMS delivery failed for {mask_phone(phone)}: {e}")
            raise InternalError() from e

        logger.info(f"OTP issued for {mask_phone(phone)}")
        return code

    def verify(self, phone: str, code: str) -> None:
        """Consume the code for ``phone``; raises ``UnauthorizedError`` on any mismatch."""
        otp_key = self._otp_key(phone)
        attempts_key = self._attempts_key(phone)

        stored = self.store.get(otp_key)
        if stored is None:
            raise UnauthorizedError("invalid or expired OTP")

        attempts = self.store.incr(attempts_key, self.config.ttl)
        if attempts > self.config.max_attempts:
            # Only reachable by calls racing the one that used up the last
            # attempt; that call already removes the record on a mismatch
            logger.warning(f"OTP attempt ceiling exceeded for {mask_phone(phone)}")
            raise UnauthorizedError("invalid or expired OTP")

        if hmac.compare_digest(stored.encode(), (code or "").encode()):
            # Only one concurrent verifier can take the code
            if not self.store.compare_and_delete(otp_key, stored):
                raise UnauthorizedError("invalid or expired OTP")
            self.store.delete(attempts_key)
            return

        if attempts >= self.config.max_attempts:
            if self.store.compare_and_delete(otp_key, stored):
                self.store.delete(attempts_key)
            logger.warning(f"OTP attempts exhausted for {mask_phone(phone)}")
        raise UnauthorizedError("invalid or expired OTP")
