"""
User model: credentials, role-based access control and reset-flow state.

Admins and cashiers share one table. ``admin_slot`` is ``1`` on the admin
row and NULL everywhere else; its unique constraint keeps the store itself
from ever holding two admins.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from retailpos.core.roles import AccountStatus, Role
from retailpos.db.base import Base

ADMIN_SLOT = 1


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: str = Column(String(36), primary_key=True, default=_new_id)  # type: ignore[assignment]
    login_email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    personal_email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    hashed_password: str | None = Column(String(128), nullable=True)  # type: ignore[assignment]
    role: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # admin | cashier
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=AccountStatus.ACTIVE.value,
        server_default=AccountStatus.ACTIVE.value,
    )  # active | inactive

    # Cashier profile
    name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    phone: str | None = Column(String(32), nullable=True)  # type: ignore[assignment]
    store_location: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]

    # Reset / setup flow
    reset_token: str | None = Column(String(12), nullable=True)  # type: ignore[assignment]
    reset_token_expiry: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    reset_requested: bool = Column(  # type: ignore[assignment]
        Boolean, nullable=False, default=False, server_default="false"
    )
    setup_complete: bool = Column(  # type: ignore[assignment]
        Boolean, nullable=False, default=False, server_default="false"
    )
    admin_slot: int | None = Column(Integer, unique=True, nullable=True)  # type: ignore[assignment]

    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    def set_reset_token(self, token: str, expires_at: datetime) -> None:
        self.reset_token = token
        self.reset_token_expiry = expires_at
        self.reset_requested = False
