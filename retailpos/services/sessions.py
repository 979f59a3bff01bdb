"""Session issuing and resolution on top of the JWT helpers."""

from __future__ import annotations

from dataclasses import dataclass

from retailpos.core.roles import Role
from retailpos.core.security import (
    SessionClaims,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
)
from retailpos.models.user import User
from retailpos.repositories.user_repo import UserRepository


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str


def claims_for(user: User) -> SessionClaims:
    role = user.role_enum
    return SessionClaims(
        user_id=user.id,
        role=role,
        personal_email=user.personal_email,
        setup_complete=user.setup_complete if role is Role.ADMIN else None,
    )


def issue_session(user: User) -> SessionTokens:
    return SessionTokens(
        access_token=create_access_token(claims_for(user)),
        refresh_token=create_refresh_token(user.id),
    )


def resolve_session(token: str | None) -> SessionClaims | None:
    if not token:
        return None
    return decode_access_token(token)


async def refresh_session(repo: UserRepository, refresh_token: str) -> SessionTokens | None:
    """Re-read the user so refreshed claims track the current record."""
    payload = decode_refresh_token(refresh_token)
    if payload is None:
        return None
    user = await repo.find_by_id(str(payload["sub"]))
    if user is None or not user.is_active:
        return None
    return issue_session(user)
