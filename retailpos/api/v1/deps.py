"""
FastAPI dependencies: database session, collaborators and auth guards.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from retailpos.core.authorization import Decision, authorize
from retailpos.core.config import settings
from retailpos.core.exceptions import (
    AuthenticationFailure,
    AuthorizationFailure,
    LoginRedirect,
)
from retailpos.core.roles import RequiredRole
from retailpos.core.security import SessionClaims
from retailpos.db.session import async_session_factory
from retailpos.models.user import User
from retailpos.repositories.user_repo import UserRepository
from retailpos.services.notifier import Notifier, build_notifier
from retailpos.services.password_reset import PasswordResetService
from retailpos.services.sessions import resolve_session

# auto_error=False so we can fall back to the cookie when the header is missing
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_PREFIX}/auth/login", auto_error=False
)


# ── Database session & collaborators ────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_user_repo(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


async def get_reset_service(
    repo: UserRepository = Depends(get_user_repo),
    notifier: Notifier = Depends(get_notifier),
) -> PasswordResetService:
    return PasswordResetService(repo, notifier)


# ── Session claims ──────────────────────────────────────────────────
async def get_session_claims(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),  # HttpOnly cookie
) -> SessionClaims | None:
    """Decode the JWT from header or cookie. ``None`` when absent or invalid."""
    # Priority: Header > Cookie
    final_token = token
    if not final_token and access_token:
        final_token = access_token.removeprefix("Bearer ")
    return resolve_session(final_token)


# ── API guards: 401 / 403 ───────────────────────────────────────────
def require_role(required: RequiredRole) -> Callable[..., Awaitable[SessionClaims]]:
    async def _guard(
        claims: SessionClaims | None = Depends(get_session_claims),
    ) -> SessionClaims:
        if authorize(claims, required) is Decision.ALLOW:
            return claims  # type: ignore[return-value]
        if claims is None:
            raise AuthenticationFailure("Could not validate credentials")
        raise AuthorizationFailure(f"{required.value.capitalize()} privileges required")

    _guard.__name__ = f"require_{required.name.lower()}"
    return _guard


require_admin = require_role(RequiredRole.ADMIN)
require_cashier = require_role(RequiredRole.CASHIER)
require_authenticated = require_role(RequiredRole.ANY_AUTHENTICATED)


async def get_current_user(
    claims: SessionClaims = Depends(require_authenticated),
    repo: UserRepository = Depends(get_user_repo),
) -> User:
    """Load the caller's record, rejecting deleted or inactive accounts."""
    user = await repo.find_by_id(claims.user_id)
    if user is None or not user.is_active:
        raise AuthenticationFailure("Could not validate credentials")
    return user


# ── UI guards: redirect to login ────────────────────────────────────
def require_page_role(required: RequiredRole) -> Callable[..., Awaitable[SessionClaims]]:
    """Wrong-role and anonymous callers get the same login redirect."""

    async def _guard(
        claims: SessionClaims | None = Depends(get_session_claims),
    ) -> SessionClaims:
        if authorize(claims, required) is Decision.DENY:
            raise LoginRedirect(settings.LOGIN_PATH)
        return claims  # type: ignore[return-value]

    _guard.__name__ = f"require_{required.name.lower()}_page"
    return _guard
