"""
Credential verification: passwords against bcrypt digests and OTPs against
the stored reset token.

Both checks report a single generic failure; callers must not be able to
tell an unknown email from a wrong secret.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from retailpos.core.otp import ensure_utc, utc_now
from retailpos.core.security import dummy_verify, verify_password as _bcrypt_verify
from retailpos.models.user import User
from retailpos.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordCheck:
    authenticated: bool
    user: User | None = None


@dataclass(frozen=True)
class OtpCheck:
    valid: bool
    user: User | None = None


async def verify_password(
    repo: UserRepository, login_email: str, candidate: str
) -> PasswordCheck:
    user = await repo.find_by_login_email(login_email.strip())
    if user is None or not user.hashed_password:
        await asyncio.to_thread(dummy_verify)
        return PasswordCheck(authenticated=False)
    if not await asyncio.to_thread(_bcrypt_verify, candidate, user.hashed_password):
        return PasswordCheck(authenticated=False)
    return PasswordCheck(authenticated=True, user=user)


async def verify_otp(
    repo: UserRepository,
    login_email: str,
    otp: str,
    *,
    new_password_hash: str | None = None,
    complete_setup: bool = False,
    now: datetime | None = None,
) -> OtpCheck:
    """Check and spend the OTP held on *login_email*'s record.

    An expired token is cleared even when the submitted value matches it.
    A wrong value leaves an unexpired token in place.
    """
    now = now or utc_now()
    user = await repo.find_by_login_email(login_email.strip())
    if user is None or not user.reset_token or user.reset_token_expiry is None:
        return OtpCheck(valid=False)

    if ensure_utc(user.reset_token_expiry) <= now:
        # Conditional on the value seen, so a freshly reissued token survives
        if await repo.discard_reset_token(user.id, user.reset_token):
            logger.info("Expired reset token cleared for user %s", user.id)
        await repo.db.refresh(user)
        return OtpCheck(valid=False)

    token = user.reset_token
    if not secrets.compare_digest(token.encode(), otp.strip().encode()):
        return OtpCheck(valid=False)

    consumed = await repo.consume_reset_token(
        user.id,
        token,
        hashed_password=new_password_hash,
        complete_setup=complete_setup,
    )
    if not consumed:
        # Another request spent or replaced the token first
        return OtpCheck(valid=False)
    await repo.db.refresh(user)
    return OtpCheck(valid=True, user=user)
