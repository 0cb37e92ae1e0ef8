# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

from app.application.services.otp_service import OTPConfig
from app.application.services.reverse_otp_service import ReverseOTPConfig
from app.application.services.token_service import TokenConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "Phone Auth API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings (user directory)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./phone_auth.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # OTP (SMS) Settings
    OTP_CODE_LENGTH: int = 6
    OTP_TTL_SECONDS: int = 300
    OTP_MAX_ATTEMPTS: int = 3
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_MAX_PER_HOUR: int = 5

    # Reverse OTP (WhatsApp) Settings
    REVERSE_OTP_SESSION_TTL_SECONDS: int = 300
    REVERSE_OTP_CODE_LENGTH: int = 6
    REVERSE_OTP_COOLDOWN_SECONDS: int = 60

    # Phone numbers without a country code are parsed in this region
    DEFAULT_PHONE_REGION: str = "ID"

    # Ephemeral store. Unset REDIS_URL falls back to the in-memory store.
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)
    REDIS_SOCKET_TIMEOUT: float = 2.0

    # Providers: "log" or "twilio"
    SMS_PROVIDER: str = "log"
    MESSAGING_PROVIDER: str = "log"

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.environ.get("TWILIO_PHONE_NUMBER", "")
    WHATSAPP_BUSINESS_NUMBER: str = os.environ.get("WHATSAPP_BUSINESS_NUMBER", "")

    # HMAC secret for inbound webhook signatures (empty disables the check)
    WEBHOOK_SECRET: str = os.environ.get("WEBHOOK_SECRET", "")

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60

    # Helper methods for list envs
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    def otp_config(self) -> OTPConfig:
        return OTPConfig(
            code_length=self.OTP_CODE_LENGTH,
            ttl=self.OTP_TTL_SECONDS,
            max_attempts=self.OTP_MAX_ATTEMPTS,
            resend_cooldown=self.OTP_RESEND_COOLDOWN_SECONDS,
            max_per_hour=self.OTP_MAX_PER_HOUR,
        )

    def reverse_otp_config(self) -> ReverseOTPConfig:
        return ReverseOTPConfig(
            session_ttl=self.REVERSE_OTP_SESSION_TTL_SECONDS,
            code_length=self.REVERSE_OTP_CODE_LENGTH,
            cooldown=self.REVERSE_OTP_COOLDOWN_SECONDS,
        )

    def token_config(self) -> TokenConfig:
        return TokenConfig(
            signing_secret=self.SECRET_KEY,
            access_ttl=self.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            refresh_ttl=self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
            algorithm=self.ALGORITHM,
        )


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
