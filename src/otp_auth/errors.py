"""Typed failures raised by the auth flows.

Every failure carries a stable ``kind`` (what API clients switch on) and a
human-readable ``message``. Messages never contain OTP codes, passwords or
password hashes.
"""

from __future__ import annotations

import math
from datetime import datetime


class AuthError(Exception):
    """Base class for all auth-flow failures."""

    kind: str = "AuthError"
    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class PolicyViolation(AuthError):
    kind = "PolicyViolation"
    default_message = "This account type cannot be registered"


class InvalidIdentifier(AuthError):
    kind = "InvalidIdentifier"
    default_message = "Invalid mobile number"


class Conflict(AuthError):
    kind = "Conflict"
    default_message = "User already exists with this mobile or email"


class _WaitError(AuthError):
    """A failure that tells the caller how long to wait before retrying."""

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = max(0, retry_after)
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retryAfter": self.retry_after}


class RateLimited(_WaitError):
    kind = "RateLimited"
    default_message = "Please wait before requesting a new code"


class Blocked(_WaitError):
    kind = "Blocked"
    default_message = "Too many failed attempts, try again later"

    def __init__(self, blocked_until: datetime, now: datetime) -> None:
        self.blocked_until = blocked_until
        super().__init__(seconds_until(blocked_until, now))

    def to_dict(self) -> dict:
        return {**super().to_dict(), "blockedUntil": self.blocked_until.isoformat()}


class NotFound(AuthError):
    kind = "NotFound"
    default_message = "No verification code found, request a new one"


class Expired(AuthError):
    kind = "Expired"
    default_message = "Verification code has expired"


class InvalidCode(AuthError):
    kind = "InvalidCode"
    default_message = "Invalid verification code"


class InvalidCredentials(AuthError):
    kind = "InvalidCredentials"
    default_message = "Invalid credentials"


class NotVerified(AuthError):
    kind = "NotVerified"
    default_message = "Please verify your mobile number first"


class ValidationFailed(AuthError):
    kind = "ValidationError"
    default_message = "Validation failed"


class Unavailable(AuthError):
    kind = "Unavailable"
    default_message = "Service temporarily unavailable, please retry"


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from *now* until *moment*, rounded up."""
    return max(0, math.ceil((moment - now).total_seconds()))
