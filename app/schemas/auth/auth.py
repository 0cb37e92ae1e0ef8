# app/schemas/auth.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List


class StrictModel(BaseModel):
    # Unknown request fields are rejected at the deserialization boundary
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class SendOTPRequest(StrictModel):
    phone: str = Field(..., min_length=3, max_length=32, description="Phone number, local or with country code")


class SendOTPResponse(BaseModel):
    expires_in: int


class VerifyOTPRequest(StrictModel):
    phone: str = Field(..., min_length=3, max_length=32)
    code: str = Field(..., description="Numeric code received by SMS")
    device_id: Optional[str] = Field(None, max_length=128)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v):
        if not v.isdigit() or not 4 <= len(v) <= 10:
            raise ValueError("code must be 4-10 digits")
        return v


class InitReverseOTPRequest(StrictModel):
    phone: str = Field(..., min_length=3, max_length=32)


class InitReverseOTPResponse(BaseModel):
    session_id: str
    target_number: str
    code: str
    expires_in: int


class CheckReverseOTPRequest(StrictModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    device_id: Optional[str] = Field(None, max_length=128)


class CheckReverseOTPResponse(BaseModel):
    status: str


class RefreshRequest(StrictModel):
    refresh_token: str = Field(..., min_length=1, max_length=512)
    device_id: Optional[str] = Field(None, max_length=128)


class LogoutRequest(StrictModel):
    refresh_token: Optional[str] = Field(None, max_length=512)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: int


class UserResponse(BaseModel):
    id: str
    name: Optional[str] = None
    phone: str
    is_verified: bool
    created_at: Optional[str] = None


class AuthResponse(TokenPairResponse):
    user: UserResponse
    is_new_user: bool


class DeviceSessionResponse(BaseModel):
    device_id: str
    last_seen_at: int


class DeviceSessionListResponse(BaseModel):
    devices: List[DeviceSessionResponse]
