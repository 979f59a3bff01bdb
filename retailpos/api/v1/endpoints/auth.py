"""
Auth endpoints: login (OAuth2 password flow), token refresh, admin signup
and the self-service password-reset surfaces.
"""

import logging

from fastapi import APIRouter, Cookie, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm

from retailpos.api.v1.deps import (
    get_current_user,
    get_reset_service,
    get_user_repo,
)
from retailpos.core.config import settings
from retailpos.core.exceptions import AuthenticationFailure
from retailpos.core.limiter import limiter
from retailpos.models.user import User
from retailpos.repositories.user_repo import UserRepository
from retailpos.schemas.auth import (
    EmailRequest,
    ForgotPasswordResponse,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
)
from retailpos.schemas.token import RefreshRequest, Token
from retailpos.schemas.user import UserRead
from retailpos.services.credentials import verify_password
from retailpos.services.password_reset import PasswordResetService, ResetPasswordForm
from retailpos.services.sessions import SessionTokens, issue_session, refresh_session

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

_GENERIC_FORGOT = "If your email is registered, password reset instructions are on their way."


def _set_session_cookies(response: Response, tokens: SessionTokens) -> None:
    response.set_cookie(
        key="access_token",
        value=f"Bearer {tokens.access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,  # Set to True in HTTPS production
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=tokens.refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    repo: UserRepository = Depends(get_user_repo),
) -> Token:
    """Authenticate with login email / password. Sets HttpOnly cookies."""
    check = await verify_password(repo, form_data.username, form_data.password)
    user = check.user
    if not check.authenticated or user is None or not user.is_active:
        raise AuthenticationFailure()

    tokens = issue_session(user)
    _set_session_cookies(response, tokens)
    logger.info("User %s logged in (%s)", user.id, user.role)
    return Token(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    repo: UserRepository = Depends(get_user_repo),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise AuthenticationFailure("Refresh token missing")

    tokens = await refresh_session(repo, token_str)
    if tokens is None:
        raise AuthenticationFailure("Invalid or expired refresh token")

    _set_session_cookies(response, tokens)
    return Token(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserRead)
async def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    """Return profile of the currently authenticated user."""
    return current_user


# ── Admin signup & reset flows ──────────────────────────────────────
@router.post("/signup", response_model=SignupResponse, status_code=201)
@limiter.limit(settings.RESET_RATE_LIMIT)
async def signup_admin(
    request: Request,
    body: SignupRequest,
    service: PasswordResetService = Depends(get_reset_service),
) -> SignupResponse:
    """Create the single admin account; a password is set later via OTP."""
    issued = await service.start_admin_signup(body.name, body.email)
    return SignupResponse(
        message="OTP sent to your email. Please verify your account.",
        email=body.email,
        otp_expires=issued.expires_at,
    )


@router.post("/forgot-password", response_model=ForgotPasswordResponse)
@limiter.limit(settings.RESET_RATE_LIMIT)
async def forgot_password(
    request: Request,
    body: EmailRequest,
    service: PasswordResetService = Depends(get_reset_service),
) -> ForgotPasswordResponse:
    """Always success-shaped, whether or not the account exists."""
    outcome = await service.forgot_password(body.email)
    if outcome.initial_setup:
        return ForgotPasswordResponse(
            message="OTP sent to admin email. Please proceed to create your password.",
            initial_setup=True,
        )
    return ForgotPasswordResponse(message=_GENERIC_FORGOT)


@router.post("/cashier-reset-request", response_model=MessageResponse)
@limiter.limit(settings.RESET_RATE_LIMIT)
async def cashier_reset_request(
    request: Request,
    body: EmailRequest,
    service: PasswordResetService = Depends(get_reset_service),
) -> MessageResponse:
    """Flag a cashier account so an admin can issue a reset OTP."""
    await service.request_cashier_reset(body.email)
    return MessageResponse(
        message="If your account exists, the request was sent to an admin. Please wait for a response."
    )


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(settings.RESET_RATE_LIMIT)
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: PasswordResetService = Depends(get_reset_service),
) -> MessageResponse:
    """Spend an OTP to set a new password (or finish first-time admin setup)."""
    await service.complete_reset(
        ResetPasswordForm(
            email=body.email,
            otp=body.otp,
            new_password=body.new_password,
            confirm_password=body.confirm_password,
            is_initial_setup=body.is_initial_setup,
        )
    )
    if body.is_initial_setup:
        return MessageResponse(message="Admin account setup complete. You can now log in.")
    return MessageResponse(message="Password reset successfully. You can now log in.")
