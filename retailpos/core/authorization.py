"""
Authorization gate.

Decides, from explicitly passed session claims, whether a caller may use a
surface. Callers translate a DENY into 401/403 (API) or a login redirect (UI).
"""

from __future__ import annotations

import enum

from retailpos.core.roles import RequiredRole, Role
from retailpos.core.security import SessionClaims


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


def _role_satisfies(role: Role, required: RequiredRole) -> bool:
    if required is RequiredRole.ANY_AUTHENTICATED:
        return role in (Role.ADMIN, Role.CASHIER)
    if required is RequiredRole.ADMIN:
        return role is Role.ADMIN
    if required is RequiredRole.CASHIER:
        return role is Role.CASHIER
    raise ValueError(f"Unhandled required role: {required!r}")


def authorize(claims: SessionClaims | None, required: RequiredRole) -> Decision:
    if claims is None:
        return Decision.DENY
    if not isinstance(claims.role, Role):
        raise ValueError(f"Unknown role in claims: {claims.role!r}")
    return Decision.ALLOW if _role_satisfies(claims.role, required) else Decision.DENY
