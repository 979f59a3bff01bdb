"""Closed role / status vocabularies shared by models, tokens and guards."""

from __future__ import annotations

import enum


class Role(str, enum.Enum):
    ADMIN = "admin"
    CASHIER = "cashier"


class RequiredRole(str, enum.Enum):
    """What a route demands of the caller's session."""

    ADMIN = "admin"
    CASHIER = "cashier"
    ANY_AUTHENTICATED = "any"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
