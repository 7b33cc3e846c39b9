"""Auth HTTP routes — thin adapters from JSON payloads to ``AuthService``.

Endpoints
---------
POST /auth/register      → create account, send first code
POST /auth/resend-otp    → send a new code
POST /auth/verify-otp    → redeem code, get access token
POST /auth/login         → mobile + password, get access token
POST /auth/forgot        → send a reset code (generic reply)
POST /auth/reset         → set a new password with a code
POST /auth/guest-login   → anonymous guest token
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from otp_auth.config import settings
from otp_auth.database.engine import async_session_factory
from otp_auth.errors import (
    AuthError,
    Blocked,
    Conflict,
    Expired,
    InvalidCode,
    InvalidCredentials,
    InvalidIdentifier,
    NotFound,
    NotVerified,
    PolicyViolation,
    RateLimited,
    Unavailable,
    ValidationFailed,
)
from otp_auth.schemas import (
    GuestTokenResponse,
    LoginRequest,
    MessageResponse,
    MobileRequest,
    OtpSentResponse,
    RegisterRequest,
    RegisterResponse,
    ResetRequest,
    TokenResponse,
    VerifyOtpRequest,
)
from otp_auth.services.auth_service import AuthService
from otp_auth.services.notifier import build_notifier
from otp_auth.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

STATUS_BY_ERROR: dict[type[AuthError], int] = {
    PolicyViolation: status.HTTP_403_FORBIDDEN,
    InvalidIdentifier: status.HTTP_400_BAD_REQUEST,
    Conflict: status.HTTP_409_CONFLICT,
    RateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
    Blocked: status.HTTP_429_TOO_MANY_REQUESTS,
    NotFound: status.HTTP_404_NOT_FOUND,
    Expired: status.HTTP_400_BAD_REQUEST,
    InvalidCode: status.HTTP_400_BAD_REQUEST,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    NotVerified: status.HTTP_403_FORBIDDEN,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    Unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an ``AuthError`` as ``{"error": kind, "message": ...}``."""
    status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    headers = {}
    if isinstance(exc, (RateLimited, Blocked)):
        headers["Retry-After"] = str(exc.retry_after)
    logger.info("%s %s → %s", request.method, request.url.path, exc.kind)
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


@lru_cache
def get_auth_service() -> AuthService:
    """Shared ``AuthService`` wired from the global settings."""
    return AuthService(
        session_factory=async_session_factory,
        policy=settings.auth_policy(),
        issuer=TokenIssuer(settings.jwt_secret, settings.jwt_algorithm),
        notifier=build_notifier(
            settings.sms_gateway_url,
            settings.sms_api_token,
            settings.sms_sender_id,
            settings.notify_timeout_seconds,
        ),
        otp_secret=settings.otp_hash_secret,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    return await service.register(
        full_name=body.full_name,
        mobile=body.mobile,
        password=body.password,
        type=body.type,
        email=body.email,
    )


@router.post("/resend-otp", response_model=OtpSentResponse)
async def resend_otp(body: MobileRequest, service: AuthService = Depends(get_auth_service)):
    return await service.resend_otp(body.mobile)


@router.post("/verify-otp", response_model=TokenResponse)
async def verify_otp(body: VerifyOtpRequest, service: AuthService = Depends(get_auth_service)):
    return await service.verify_otp(body.mobile, body.code)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    return await service.login(body.mobile, body.password)


@router.post("/forgot", response_model=MessageResponse)
async def forgot(body: MobileRequest, service: AuthService = Depends(get_auth_service)):
    return await service.forgot(body.mobile)


@router.post("/reset", response_model=MessageResponse)
async def reset(body: ResetRequest, service: AuthService = Depends(get_auth_service)):
    return await service.reset(
        body.mobile, body.otp, body.new_password, body.new_password_confirm
    )


@router.post("/guest-login", response_model=GuestTokenResponse)
async def guest_login(service: AuthService = Depends(get_auth_service)):
    return service.guest_login()
