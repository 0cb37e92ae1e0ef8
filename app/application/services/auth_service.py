import logging
from typing import Optional, Union
from dataclasses import dataclass

from ..ports.user_repo import UserRepository, UserDto
from ..ports.audit_logger import AuditLogger
from .otp_service import OTPService
from .reverse_otp_service import ReverseOTPService, ReverseOTPSession, VerificationResult, STATUS_VERIFIED
from .session_service import SessionService
from .token_service import TokenService, TokenPair
from ...exceptions import AppError, UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    tokens: TokenPair
    user: UserDto
    is_new_user: bool

    def to_dict(self) -> dict:
        return {
            **self.tokens.to_dict(),
            "user": self.user.to_dict(),
            "is_new_user": self.is_new_user,
        }


@dataclass
class AuthService:
    user_repo: UserRepository
    otp_service: OTPService
    reverse_otp_service: ReverseOTPService
    token_service: TokenService
    session_service: SessionService
    audit: Optional[AuditLogger] = None

    def _audit(self, action: str, phone: str, user_id: Optional[str] = None, success: bool = True, **details) -> None:
        if self.audit is not None:
            self.audit.log(action, phone, user_id=user_id, success=success, details=details or None)

    def send_login_otp(self, phone: str) -> None:
        try:
            self.otp_service.generate(phone)
        except AppError as e:
            self._audit("otp_send", phone, success=False, reason=e.code)
            raise
        self._audit("otp_send", phone)

    def verify_otp(self, phone: str, code: str, device_id: Optional[str] = None) -> AuthResult:
        try:
            self.otp_service.verify(phone, code)
        except AppError as e:
            self._audit("otp_verify", phone, success=False, reason=e.code)
            raise
        return self.complete_auth(phone, device_id, method="otp")

    def init_reverse_otp(self, phone: str) -> ReverseOTPSession:
        session = self.reverse_otp_service.init_session(phone)
        self._audit("reverse_otp_init", phone, session_id=session.session_id)
        return session

    def check_reverse_otp(self, session_id: str, device_id: Optional[str] = None) -> Union[VerificationResult, AuthResult]:
        result = self.reverse_otp_service.check_verification(session_id)
        if result.status != STATUS_VERIFIED:
            return result
        phone = self.reverse_otp_service.consume_verified(session_id)
        return self.complete_auth(phone, device_id, method="reverse_otp")

    def refresh(self, refresh_token: str, device_id: Optional[str] = None) -> TokenPair:
        grant = self.token_service.owner_of(refresh_token)
        if device_id:
            self.session_service.validate(grant.user_id, device_id, refresh_token)
        # Rotation refuses a device-bound token presented without its device
        tokens = self.token_service.refresh(refresh_token, device_id)
        if device_id:
            self.session_service.register(grant.user_id, device_id, tokens.refresh_token)
        return tokens

    def logout(self, access_token: Optional[str], refresh_token: Optional[str], user_id: Optional[str] = None) -> None:
        """Revoke the presented credentials and end every device session of the user.

        ``user_id`` comes from a valid access token when there is one; otherwise
        the owner of a still-live refresh token is signed out.
        """
        if not user_id and refresh_token:
            user_id = self.token_service.owner_of(refresh_token).user_id
        if not user_id:
            raise UnauthorizedError("valid access or refresh token required")
        self.token_service.revoke(access_token, refresh_token)
        self.session_service.invalidate(user_id)

    def complete_auth(self, phone: str, device_id: Optional[str] = None, method: str = "otp") -> AuthResult:
        """Find or create the account for a verified phone and mint credentials."""
        is_new_user = False
        user = self.user_repo.get_by_phone(phone)
        if not user:
            user = self.user_repo.create(phone, name="User")
            is_new_user = True
            logger.info(f"Created user {user.id} on first {method} login")
        if not user.is_verified:
            self.user_repo.mark_verified(user.id)
            user.is_verified = True

        tokens = self.token_service.generate(user.id, device_id=device_id or None)
        if device_id:
            self.session_service.register(user.id, device_id, tokens.refresh_token)

        self._audit("login", phone, user_id=user.id, method=method, new_user=is_new_user)
        return AuthResult(tokens=tokens, user=user, is_new_user=is_new_user)
