"""Service wiring for the HTTP layer.

Only the store and the provider adapters are process-wide; services are
cheap dataclasses built per request from them, so tests can swap any
collaborator with ``app.dependency_overrides``.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from .core.config import settings
from .database import get_session
from .exceptions import UnauthorizedError
from .application.ports.kv_store import KeyValueStore
from .application.ports.messaging_provider import MessagingProvider
from .application.ports.rate_limiter import RateLimiter
from .application.ports.sms_provider import SMSProvider
from .application.ports.user_repo import UserRepository
from .application.ports.audit_logger import AuditLogger
from .application.services.auth_service import AuthService
from .application.services.otp_service import OTPService
from .application.services.reverse_otp_service import ReverseOTPService
from .application.services.session_service import SessionService
from .application.services.token_service import TokenService, Claims
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.kv.memory_store import InMemoryStore
from .infrastructure.kv.redis_store import RedisStore
from .infrastructure.messaging.log_provider import LogMessagingProvider
from .infrastructure.messaging.twilio_whatsapp_provider import TwilioWhatsAppProvider
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from .infrastructure.rate_limit.store_rate_limiter import StoreRateLimiter
from .infrastructure.sms.log_provider import LogSMSProvider
from .infrastructure.sms.twilio_provider import TwilioSMSProvider

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache()
def get_store() -> KeyValueStore:
    if settings.REDIS_URL:
        logger.info("Using Redis ephemeral store")
        return RedisStore(settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT)
    logger.warning("REDIS_URL not set, using in-memory store (single process only)")
    return InMemoryStore()


@lru_cache()
def get_sms_provider() -> SMSProvider:
    if settings.SMS_PROVIDER.lower() == "twilio":
        return TwilioSMSProvider()
    return LogSMSProvider(reveal_codes=settings.DEBUG)


@lru_cache()
def get_messaging_provider() -> MessagingProvider:
    if settings.MESSAGING_PROVIDER.lower() == "twilio":
        return TwilioWhatsAppProvider()
    return LogMessagingProvider(settings.WHATSAPP_BUSINESS_NUMBER)


@lru_cache()
def get_audit_logger() -> AuditLogger:
    return StdAuditLogger()


def get_rate_limiter(store: KeyValueStore = Depends(get_store)) -> RateLimiter:
    return StoreRateLimiter(store)


def get_user_repo(session: Session = Depends(get_session)) -> UserRepository:
    return SqlUserRepository(session)


def get_token_service(store: KeyValueStore = Depends(get_store)) -> TokenService:
    return TokenService(store=store, config=settings.token_config())


def get_otp_service(
    store: KeyValueStore = Depends(get_store),
    sms: SMSProvider = Depends(get_sms_provider),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> OTPService:
    return OTPService(store=store, sms=sms, rate_limiter=rate_limiter, config=settings.otp_config())


def get_reverse_otp_service(
    store: KeyValueStore = Depends(get_store),
    messaging: MessagingProvider = Depends(get_messaging_provider),
) -> ReverseOTPService:
    return ReverseOTPService(store=store, messaging=messaging, config=settings.reverse_otp_config())


def get_session_service(
    store: KeyValueStore = Depends(get_store),
    token_service: TokenService = Depends(get_token_service),
) -> SessionService:
    return SessionService(store=store, session_ttl=settings.token_config().refresh_ttl, token_service=token_service)


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repo),
    otp_service: OTPService = Depends(get_otp_service),
    reverse_otp_service: ReverseOTPService = Depends(get_reverse_otp_service),
    token_service: TokenService = Depends(get_token_service),
    session_service: SessionService = Depends(get_session_service),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuthService:
    return AuthService(
        user_repo=user_repo,
        otp_service=otp_service,
        reverse_otp_service=reverse_otp_service,
        token_service=token_service,
        session_service=session_service,
        audit=audit,
    )


def get_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    # Fallback to cookie
    return request.cookies.get("access_token")


def get_current_claims(
    token: Optional[str] = Depends(get_bearer_token),
    token_service: TokenService = Depends(get_token_service),
) -> Claims:
    if not token:
        raise UnauthorizedError("missing authorization header")
    return token_service.validate(token)


def get_optional_claims(
    token: Optional[str] = Depends(get_bearer_token),
    token_service: TokenService = Depends(get_token_service),
) -> Optional[Claims]:
    """Claims of a valid bearer token, or None when it is missing, expired or revoked."""
    if not token:
        return None
    try:
        return token_service.validate(token)
    except UnauthorizedError:
        return None
