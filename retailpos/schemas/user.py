"""Pydantic schemas for users and cashier provisioning."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, field_validator

from retailpos.core.config import settings
from retailpos.core.roles import AccountStatus
from retailpos.core.security import BCRYPT_MAX_BYTES, exceeds_bcrypt_limit

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9]{10,15}$")


def check_email(v: str) -> str:
    v = v.strip()
    if not _EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


class UserRead(BaseModel):
    id: str
    login_email: str
    personal_email: str | None
    name: str | None
    role: str
    status: str
    setup_complete: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class CashierRead(BaseModel):
    id: str
    login_email: str
    personal_email: str | None
    name: str | None
    phone: str | None
    store_location: str | None
    status: str
    reset_requested: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ResetRequestRead(BaseModel):
    id: str
    name: str | None
    login_email: str
    personal_email: str | None

    model_config = {"from_attributes": True}


class ResetRequestCount(BaseModel):
    count: int


class CashierCreate(BaseModel):
    name: str
    login_email: str
    personal_email: str
    phone: str
    store_location: str
    temp_password: str

    @field_validator("name", "store_location")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be empty")
        if len(v) > 200:
            raise ValueError("Must not exceed 200 characters")
        return v

    @field_validator("login_email", "personal_email")
    @classmethod
    def _email(cls, v: str) -> str:
        return check_email(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        v = v.strip().replace(" ", "")
        if not _PHONE_RE.match(v):
            raise ValueError("Phone must be 10-15 digits")
        return v

    @field_validator("temp_password")
    @classmethod
    def _password(cls, v: str) -> str:
        v = v.strip()
        if len(v) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
            )
        if exceeds_bcrypt_limit(v):
            raise ValueError(f"Password must not exceed {BCRYPT_MAX_BYTES} bytes")
        return v


class CashierUpdate(BaseModel):
    name: str | None = None
    personal_email: str | None = None
    phone: str | None = None
    store_location: str | None = None
    status: AccountStatus | None = None

    @field_validator("personal_email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return check_email(v) if v is not None else v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().replace(" ", "")
        if not _PHONE_RE.match(v):
            raise ValueError("Phone must be 10-15 digits")
        return v
