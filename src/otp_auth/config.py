"""OTP Auth service — configuration loaded from environment."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from pydantic import model_validator
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class AuthPolicy:
    """Immutable timing and threshold policy injected into ``AuthService``."""

    otp_length: int
    otp_ttl: timedelta
    otp_resend_lock: timedelta
    otp_max_attempts: int
    otp_block_duration: timedelta
    login_max_attempts: int
    login_block_duration: timedelta
    access_token_ttl: timedelta
    guest_token_ttl: timedelta
    password_hash_rounds: int
    default_region: str
    self_registration_types: frozenset[str]
    store_timeout: float
    notify_timeout: float


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_auth.db"

    # ── Tokens ────────────────────────────────────────────
    jwt_secret: str = "changeme"
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 7 * 24 * 3600
    guest_token_ttl_seconds: int = 24 * 3600

    # ── OTP ───────────────────────────────────────────────
    otp_length: int = 6
    otp_ttl_seconds: int = 600
    otp_resend_lock_seconds: int = 60
    otp_max_attempts: int = 5
    otp_block_seconds: int = 300
    otp_hash_secret: str = "changeme-otp"
    otp_sweep_interval_seconds: int = 600

    # ── Login throttling / credentials ────────────────────
    login_max_attempts: int = 5
    login_block_seconds: int = 900
    password_hash_rounds: int = 12

    # ── Registration ──────────────────────────────────────
    default_region: str = "EG"
    self_registration_types: list[str] = ["patient"]

    # ── SMS gateway ───────────────────────────────────────
    sms_gateway_url: str = ""
    sms_api_token: str = ""
    sms_sender_id: str = "OTPAuth"

    # ── Timeouts ──────────────────────────────────────────
    store_timeout_seconds: float = 5.0
    notify_timeout_seconds: float = 10.0

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Auth"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_policy(self) -> Settings:
        if self.guest_token_ttl_seconds > self.access_token_ttl_seconds:
            raise ValueError("guest_token_ttl_seconds must not exceed access_token_ttl_seconds")
        if self.password_hash_rounds < 10:
            raise ValueError("password_hash_rounds must be at least 10")
        if self.otp_ttl_seconds <= self.otp_block_seconds:
            # A code must still be redeemable once the lockout it triggered ends
            raise ValueError("otp_ttl_seconds must exceed otp_block_seconds")
        if self.otp_max_attempts < 1 or self.login_max_attempts < 1:
            raise ValueError("max attempt thresholds must be at least 1")
        if not self.self_registration_types:
            raise ValueError("self_registration_types must not be empty")
        return self

    def auth_policy(self) -> AuthPolicy:
        """Freeze the auth-related settings into an ``AuthPolicy``."""
        return AuthPolicy(
            otp_length=self.otp_length,
            otp_ttl=timedelta(seconds=self.otp_ttl_seconds),
            otp_resend_lock=timedelta(seconds=self.otp_resend_lock_seconds),
            otp_max_attempts=self.otp_max_attempts,
            otp_block_duration=timedelta(seconds=self.otp_block_seconds),
            login_max_attempts=self.login_max_attempts,
            login_block_duration=timedelta(seconds=self.login_block_seconds),
            access_token_ttl=timedelta(seconds=self.access_token_ttl_seconds),
            guest_token_ttl=timedelta(seconds=self.guest_token_ttl_seconds),
            password_hash_rounds=self.password_hash_rounds,
            default_region=self.default_region,
            self_registration_types=frozenset(self.self_registration_types),
            store_timeout=self.store_timeout_seconds,
            notify_timeout=self.notify_timeout_seconds,
        )


# Singleton settings instance
settings = Settings()
