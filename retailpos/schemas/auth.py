"""Pydantic schemas for signup and the reset flows."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from retailpos.schemas.user import check_email


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SignupRequest(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return check_email(v)


class SignupResponse(MessageResponse):
    email: str
    otp_expires: datetime


class EmailRequest(BaseModel):
    email: str


class ForgotPasswordResponse(MessageResponse):
    initial_setup: bool = False


class ResetPasswordRequest(BaseModel):
    # Presence is checked by the reset service so every path validates in one order
    email: str | None = None
    otp: str | None = None
    new_password: str | None = None
    confirm_password: str | None = None
    is_initial_setup: bool = False


class ResetInitiatedResponse(MessageResponse):
    otp_expires: datetime
    delivered: bool
