"""Token issuer — signs bearer JWTs from a fixed claims struct."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt

from otp_auth.models.user import Role

GUEST_SUBJECT = "guest"


@dataclass(frozen=True)
class UserClaims:
    """Claims for an authenticated account."""

    subject: str
    mobile: str
    roles: tuple[str, ...]
    type: str


@dataclass(frozen=True)
class GuestClaims:
    """Claims for an anonymous, non-persisted guest session."""

    subject: str = GUEST_SUBJECT
    roles: tuple[str, ...] = (Role.GUEST.value,)
    type: str = Role.GUEST.value


TokenClaims = UserClaims | GuestClaims


class TokenIssuer:
    """Signs claims into an HMAC JWT.

    Verification happens at the edge with the same secret and algorithm;
    this class only mints tokens.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def issue(self, claims: TokenClaims, now: datetime, lifetime: timedelta) -> str:
        payload = {
            "sub": claims.subject,
            "roles": list(claims.roles),
            "type": claims.type,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
            "jti": secrets.token_hex(16),
        }
        if isinstance(claims, GuestClaims):
            payload["guest"] = True
        else:
            payload["mobile"] = claims.mobile
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)
