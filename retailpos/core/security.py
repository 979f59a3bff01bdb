"""
JWT session token creation / verification and password hashing (bcrypt).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from retailpos.core.config import settings
from retailpos.core.roles import Role

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# bcrypt ignores everything past this many bytes
BCRYPT_MAX_BYTES = 72

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY


# ── Passwords ───────────────────────────────────────────────────────
def exceeds_bcrypt_limit(plain: str) -> bool:
    return len(plain.encode("utf-8")) > BCRYPT_MAX_BYTES


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    if exceeds_bcrypt_limit(plain):
        # Stored passwords never exceed the limit; a truncated match must not pass
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Unrecognised or malformed digest
        return False


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def dummy_verify() -> None:
    """Burn one bcrypt verification so a missing account costs the same time."""
    pwd_context.dummy_verify()


# ── Session claims ──────────────────────────────────────────────────
@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    role: Role
    personal_email: str | None = None
    setup_complete: bool | None = None


def _claims_payload(claims: SessionClaims) -> dict[str, Any]:
    payload: dict[str, Any] = {"sub": claims.user_id, "role": claims.role.value}
    if claims.personal_email is not None:
        payload["personal_email"] = claims.personal_email
    if claims.setup_complete is not None:
        payload["setup_complete"] = claims.setup_complete
    return payload


# ── JWT tokens ──────────────────────────────────────────────────────
def create_access_token(
    claims: SessionClaims,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = _claims_payload(claims)
    payload.update({"exp": expire, "type": "access"})
    return jwt.encode(payload, _SECRET, algorithm=_ALGORITHM)


def create_refresh_token(subject: str | Any, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "type": "refresh"},
        _SECRET,
        algorithm=_ALGORITHM,
    )


def _decode(token: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


def decode_access_token(token: str) -> SessionClaims | None:
    """Return claims if *access* token is valid, else ``None``."""
    payload = _decode(token, "access")
    if payload is None:
        return None
    try:
        role = Role(payload.get("role"))
    except ValueError:
        return None
    return SessionClaims(
        user_id=str(payload["sub"]),
        role=role,
        personal_email=payload.get("personal_email"),
        setup_complete=payload.get("setup_complete"),
    )


def decode_refresh_token(token: str) -> dict | None:
    """Return payload dict if *refresh* token is valid, else ``None``."""
    return _decode(token, "refresh")
