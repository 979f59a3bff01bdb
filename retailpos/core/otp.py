"""Numeric one-time passwords for reset and setup flows."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from retailpos.core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp (SQLite drops tzinfo) to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def generate_numeric_otp(length: int | None = None) -> str:
    length = length or settings.OTP_LENGTH
    if length < 4:
        raise ValueError("OTP length must be at least 4 digits")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def otp_expiry(window_minutes: int, now: datetime | None = None) -> datetime:
    return (now or utc_now()) + timedelta(minutes=window_minutes)
