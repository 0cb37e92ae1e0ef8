# app/routers/auth_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from ..core.config import settings
from ..dependencies import (
    get_auth_service, get_bearer_token, get_current_claims, get_optional_claims, get_session_service,
)
from ..exceptions import create_success_response
from ..schemas import (
    SendOTPRequest, SendOTPResponse, VerifyOTPRequest, InitReverseOTPRequest, InitReverseOTPResponse,
    CheckReverseOTPRequest, CheckReverseOTPResponse, RefreshRequest, LogoutRequest, TokenPairResponse,
    AuthResponse, DeviceSessionResponse, DeviceSessionListResponse,
)
from ..application.services.auth_service import AuthService, AuthResult
from ..application.services.session_service import SessionService
from ..application.services.token_service import Claims
from ..utils import normalize_phone, mask_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _phone(raw: str) -> str:
    return normalize_phone(raw, settings.DEFAULT_PHONE_REGION)


def _auth_payload(result: AuthResult) -> dict:
    return AuthResponse(**result.to_dict()).model_dump()


@router.post("/otp/send")
def send_otp(payload: SendOTPRequest, auth: AuthService = Depends(get_auth_service)):
    phone = _phone(payload.phone)
    auth.send_login_otp(phone)
    logger.info(f"OTP requested for {mask_phone(phone)}")
    return create_success_response(SendOTPResponse(expires_in=settings.OTP_TTL_SECONDS).model_dump())


@router.post("/otp/verify")
def verify_otp(payload: VerifyOTPRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.verify_otp(_phone(payload.phone), payload.code, payload.device_id)
    return create_success_response(_auth_payload(result))


@router.post("/reverse-otp/init")
def init_reverse_otp(payload: InitReverseOTPRequest, auth: AuthService = Depends(get_auth_service)):
    session = auth.init_reverse_otp(_phone(payload.phone))
    return create_success_response(InitReverseOTPResponse(
        session_id=session.session_id,
        target_number=session.target_number,
        code=session.unique_code,
        expires_in=settings.REVERSE_OTP_SESSION_TTL_SECONDS,
    ).model_dump())


@router.post("/reverse-otp/check")
def check_reverse_otp(payload: CheckReverseOTPRequest, auth: AuthService = Depends(get_auth_service)):
    result = auth.check_reverse_otp(payload.session_id, payload.device_id)
    if isinstance(result, AuthResult):
        return create_success_response({"status": "verified", **_auth_payload(result)})
    return create_success_response(CheckReverseOTPResponse(status=result.status).model_dump())


@router.post("/refresh")
def refresh_tokens(payload: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    tokens = auth.refresh(payload.refresh_token, payload.device_id)
    return create_success_response(TokenPairResponse(**tokens.to_dict()).model_dump())


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    payload: Optional[LogoutRequest] = None,
    access_token: Optional[str] = Depends(get_bearer_token),
    claims: Optional[Claims] = Depends(get_optional_claims),
    auth: AuthService = Depends(get_auth_service),
):
    # An expired access token must not stop the client from revoking its refresh token
    refresh_token = payload.refresh_token if payload else None
    user_id = claims.user_id if claims else None
    auth.logout(access_token, refresh_token, user_id=user_id)
    logger.info("Logout completed" if user_id is None else f"User {user_id} logged out")
    return Response(status_code=status.HTTP_204_NO_CONTENT)



@router.get("/sessions")
def list_sessions(
    claims: Claims = Depends(get_current_claims),
    sessions: SessionService = Depends(get_session_service),
):
    devices = [
        DeviceSessionResponse(device_id=d.device_id, last_seen_at=d.last_seen_at)
        for d in sessions.list_devices(claims.user_id)
    ]
    return create_success_response(DeviceSessionListResponse(devices=devices).model_dump())
