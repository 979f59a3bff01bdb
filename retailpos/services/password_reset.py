"""
Password-reset state machine.

State lives on the user record and is derived, never stored separately::

    NONE ──request──▶ REQUESTED ──issue──▶ TOKEN_ISSUED ──verify──▶ NONE
      └──────────────issue──────────────────▲     └──expired attempt──▶ NONE

Every reset path validates in the same order: required fields, confirmation
equality, length policy, record eligibility, then the OTP itself.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from retailpos.core.config import settings
from retailpos.core.exceptions import (
    ConflictFailure,
    NotFoundFailure,
    TokenFailure,
    ValidationFailure,
)
from retailpos.core.otp import ensure_utc, generate_numeric_otp, otp_expiry, utc_now
from retailpos.core.roles import Role
from retailpos.core.security import BCRYPT_MAX_BYTES, exceeds_bcrypt_limit, get_password_hash
from retailpos.models.user import ADMIN_SLOT, User
from retailpos.repositories.user_repo import UserRepository
from retailpos.services.credentials import OtpCheck, verify_otp
from retailpos.services.notifier import NotificationError, Notifier, otp_email_body

logger = logging.getLogger(__name__)

OtpChecker = Callable[..., Awaitable[OtpCheck]]


class ResetState(str, enum.Enum):
    NONE = "none"
    REQUESTED = "requested"
    TOKEN_ISSUED = "token_issued"
    EXPIRED = "expired"


def reset_state(user: User, now: datetime | None = None) -> ResetState:
    if user.reset_token and user.reset_token_expiry is not None:
        if ensure_utc(user.reset_token_expiry) <= (now or utc_now()):
            return ResetState.EXPIRED
        return ResetState.TOKEN_ISSUED
    if user.reset_requested:
        return ResetState.REQUESTED
    return ResetState.NONE


@dataclass(frozen=True)
class IssuedToken:
    user_id: str
    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class ResetPasswordForm:
    email: str | None
    otp: str | None
    new_password: str | None
    confirm_password: str | None
    is_initial_setup: bool = False


@dataclass(frozen=True)
class ForgotPasswordOutcome:
    initial_setup: bool = False


def _validate_password_pair(new_password: str, confirm_password: str) -> str:
    new_password = new_password.strip()
    if new_password != confirm_password.strip():
        raise ValidationFailure("New passwords do not match", field="confirm_password")
    if len(new_password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long",
            field="new_password",
        )
    if exceeds_bcrypt_limit(new_password):
        raise ValidationFailure(
            f"Password must not exceed {BCRYPT_MAX_BYTES} bytes",
            field="new_password",
        )
    return new_password


class PasswordResetService:
    def __init__(
        self,
        repo: UserRepository,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utc_now,
        otp_checker: OtpChecker = verify_otp,
    ) -> None:
        self.repo = repo
        self.notifier = notifier
        self.clock = clock
        self.otp_checker = otp_checker

    # ── NONE → REQUESTED ────────────────────────────────────────────
    async def request_reset(self, user: User) -> ResetState:
        if user.role_enum is not Role.CASHIER:
            raise ValueError("Only cashiers wait for an admin-issued reset")
        if not user.reset_requested:
            user.reset_requested = True
            await self.repo.save(user)
            logger.info("Cashier %s requested a password reset", user.id)
        return reset_state(user, self.clock())

    # ── → TOKEN_ISSUED ──────────────────────────────────────────────
    async def issue_token(
        self,
        user: User,
        *,
        address: str | None,
        window_minutes: int,
        subject: str = "Your OTP",
    ) -> IssuedToken:
        otp = generate_numeric_otp()
        expires_at = otp_expiry(window_minutes, self.clock())
        user.set_reset_token(otp, expires_at)
        await self.repo.save(user)
        logger.info("Reset token issued for user %s (valid %d min)", user.id, window_minutes)

        delivered = False
        if not address:
            logger.warning("No delivery address for user %s; OTP not sent", user.id)
        else:
            try:
                await self.notifier.send(address, subject, otp_email_body(otp, window_minutes))
                delivered = True
            except NotificationError:
                # Token stays valid; delivery is best effort
                logger.exception("OTP delivery to user %s failed", user.id)
        return IssuedToken(user_id=user.id, expires_at=expires_at, delivered=delivered)

    # ── Surfaces ────────────────────────────────────────────────────
    async def start_admin_signup(self, name: str, email: str) -> IssuedToken:
        if await self.repo.find_admin() is not None:
            raise ConflictFailure(
                "An admin account already exists. Please contact the existing admin to proceed."
            )
        if await self.repo.find_by_login_email(email) is not None:
            raise ConflictFailure("An account with this email already exists.")

        admin = User(
            login_email=email,
            name=name,
            role=Role.ADMIN.value,
            admin_slot=ADMIN_SLOT,
            setup_complete=False,
        )
        try:
            await self.repo.save(admin)
        except IntegrityError:
            await self.repo.db.rollback()
            raise ConflictFailure(
                "An admin account already exists. Please contact the existing admin to proceed."
            )
        logger.info("Admin account created for %s, awaiting OTP verification", admin.id)
        return await self.issue_token(
            admin,
            address=admin.login_email,
            window_minutes=settings.SELF_SERVICE_OTP_EXPIRE_MINUTES,
            subject="Admin Account Verification",
        )

    async def _bootstrap_initial_admin(self, email: str) -> ForgotPasswordOutcome:
        admin = await self.repo.find_admin()
        if admin is None:
            admin = User(
                login_email=email,
                role=Role.ADMIN.value,
                admin_slot=ADMIN_SLOT,
                setup_complete=False,
            )
            try:
                await self.repo.save(admin)
            except IntegrityError:
                await self.repo.db.rollback()
                logger.warning("Initial admin bootstrap lost a race; ignoring")
                return ForgotPasswordOutcome()
            logger.info("Placeholder admin created for initial setup")
        elif admin.login_email != email or admin.setup_complete:
            return ForgotPasswordOutcome()

        await self.issue_token(
            admin,
            address=email,
            window_minutes=settings.SELF_SERVICE_OTP_EXPIRE_MINUTES,
            subject="Admin Account Setup",
        )
        return ForgotPasswordOutcome(initial_setup=True)

    async def forgot_password(self, email: str) -> ForgotPasswordOutcome:
        email = email.strip()
        initial_email = settings.ADMIN_INITIAL_EMAIL
        user = await self.repo.find_by_login_email(email)

        if user is None:
            if initial_email and email == initial_email:
                return await self._bootstrap_initial_admin(email)
            logger.info("Forgot-password for unknown email; returning generic response")
            return ForgotPasswordOutcome()

        if not user.is_active:
            logger.info("Forgot-password for inactive user %s ignored", user.id)
            return ForgotPasswordOutcome()

        role = user.role_enum
        if role is Role.ADMIN:
            if initial_email and email == initial_email and not user.setup_complete:
                return await self._bootstrap_initial_admin(email)
            await self.issue_token(
                user,
                address=user.login_email,
                window_minutes=settings.SELF_SERVICE_OTP_EXPIRE_MINUTES,
                subject="Password Reset OTP",
            )
        elif role is Role.CASHIER:
            await self.request_reset(user)
        else:
            raise ValueError(f"Unhandled role: {role!r}")
        return ForgotPasswordOutcome()

    async def request_cashier_reset(self, email: str) -> None:
        user = await self.repo.find_by_login_email(email.strip())
        if user is None or user.role_enum is not Role.CASHIER or not user.is_active:
            logger.info("Cashier reset request did not match an active cashier")
            return
        await self.request_reset(user)

    async def initiate_cashier_reset(self, cashier_id: str) -> IssuedToken:
        try:
            uuid.UUID(cashier_id)
        except ValueError:
            raise ValidationFailure("Invalid cashier ID", field="cashier_id")
        cashier = await self.repo.find_cashier(cashier_id)
        if cashier is None:
            raise NotFoundFailure("Cashier not found")
        return await self.issue_token(
            cashier,
            address=cashier.personal_email,
            window_minutes=settings.ADMIN_INITIATED_OTP_EXPIRE_MINUTES,
            subject="Your Cashier Password Reset OTP",
        )

    # ── TOKEN_ISSUED → NONE ─────────────────────────────────────────
    async def complete_reset(self, form: ResetPasswordForm) -> User:
        for field in ("email", "otp", "new_password", "confirm_password"):
            value = getattr(form, field)
            if value is None or not value.strip():
                raise ValidationFailure("All required fields must be provided", field=field)

        new_password = _validate_password_pair(form.new_password, form.confirm_password)  # type: ignore[arg-type]
        email = form.email.strip()  # type: ignore[union-attr]

        user = await self.repo.find_by_login_email(email)
        if form.is_initial_setup and user is not None and (
            user.role_enum is not Role.ADMIN or user.setup_complete
        ):
            raise ConflictFailure("Admin account already set up or role mismatch.")
        # Any OTP-verified password for a pending admin finishes setup
        complete_setup = form.is_initial_setup or (
            user is not None and user.role_enum is Role.ADMIN and not user.setup_complete
        )

        hashed = await asyncio.to_thread(get_password_hash, new_password)
        check = await self.otp_checker(
            self.repo,
            email,
            form.otp,
            new_password_hash=hashed,
            complete_setup=complete_setup,
            now=self.clock(),
        )
        if not check.valid or check.user is None:
            raise TokenFailure()
        logger.info(
            "Password %s for user %s",
            "set during initial setup" if form.is_initial_setup else "reset",
            check.user.id,
        )
        return check.user
