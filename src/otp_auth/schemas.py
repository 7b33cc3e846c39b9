"""Request / response models for the auth operations (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ─────────────────────────────────────────────

class RegisterRequest(_CamelModel):
    full_name: str = Field(..., min_length=1, max_length=256)
    mobile: str = Field(..., min_length=4, max_length=32)
    email: str | None = Field(default=None, max_length=256)
    password: str = Field(..., min_length=6, max_length=128)
    type: str = "patient"


class MobileRequest(_CamelModel):
    mobile: str = Field(..., min_length=4, max_length=32)


class VerifyOtpRequest(_CamelModel):
    mobile: str = Field(..., min_length=4, max_length=32)
    code: str = Field(..., min_length=4, max_length=10)


class LoginRequest(_CamelModel):
    mobile: str = Field(..., min_length=4, max_length=32)
    password: str = Field(..., min_length=1, max_length=128)


class ResetRequest(_CamelModel):
    mobile: str = Field(..., min_length=4, max_length=32)
    otp: str = Field(..., min_length=4, max_length=10)
    new_password: str = Field(..., min_length=6, max_length=128)
    new_password_confirm: str = Field(..., min_length=6, max_length=128)


# ── Responses ────────────────────────────────────────────

class MessageResponse(_CamelModel):
    message: str


class RegisterResponse(_CamelModel):
    message: str
    mobile: str


class OtpSentResponse(_CamelModel):
    message: str
    expires_in: int


class TokenResponse(_CamelModel):
    access_token: str
    token_type: str = "bearer"


class GuestTokenResponse(TokenResponse):
    role: str = "guest"
    message: str = "Guest session created. Limited access granted."
