"""
Admin endpoints: cashier provisioning and admin-initiated password resets.

Every route here requires an admin session (403 for cashiers, 401 without
a session).
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, Query

from retailpos.api.v1.deps import get_reset_service, get_user_repo, require_admin
from retailpos.core.exceptions import ConflictFailure, NotFoundFailure, ValidationFailure
from retailpos.core.roles import AccountStatus, Role
from retailpos.core.security import SessionClaims, get_password_hash
from retailpos.models.user import User
from retailpos.repositories.user_repo import UserRepository
from retailpos.schemas.auth import ResetInitiatedResponse
from retailpos.schemas.user import (
    CashierCreate,
    CashierRead,
    CashierUpdate,
    ResetRequestCount,
    ResetRequestRead,
)
from retailpos.services.password_reset import PasswordResetService

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


async def _get_cashier_or_404(repo: UserRepository, cashier_id: str) -> User:
    try:
        uuid.UUID(cashier_id)
    except ValueError:
        raise ValidationFailure("Invalid cashier ID", field="cashier_id")
    cashier = await repo.find_cashier(cashier_id)
    if cashier is None:
        raise NotFoundFailure("Cashier not found")
    return cashier


# ── Cashier CRUD ────────────────────────────────────────────────────
@router.get("/cashiers", response_model=list[CashierRead])
async def list_cashiers(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> list[User]:
    return await repo.list_cashiers(skip=skip, limit=limit)


@router.post("/cashiers", response_model=CashierRead, status_code=201)
async def create_cashier(
    body: CashierCreate,
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> User:
    """Provision a cashier with a temporary password."""
    if await repo.find_by_login_email(body.login_email) is not None:
        raise ConflictFailure("User with this login email already exists")

    cashier = User(
        login_email=body.login_email,
        personal_email=body.personal_email,
        name=body.name,
        phone=body.phone,
        store_location=body.store_location,
        hashed_password=await asyncio.to_thread(get_password_hash, body.temp_password),
        role=Role.CASHIER.value,
        status=AccountStatus.ACTIVE.value,
    )
    await repo.save(cashier)
    logger.info("Created cashier %s", cashier.id)
    return cashier


@router.get("/cashiers/{cashier_id}", response_model=CashierRead)
async def get_cashier(
    cashier_id: str,
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> User:
    return await _get_cashier_or_404(repo, cashier_id)


@router.patch("/cashiers/{cashier_id}", response_model=CashierRead)
async def update_cashier(
    cashier_id: str,
    body: CashierUpdate,
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> User:
    cashier = await _get_cashier_or_404(repo, cashier_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None:
            continue
        setattr(cashier, field, value.value if isinstance(value, AccountStatus) else value)
    await repo.save(cashier)
    logger.info("Updated cashier %s: %s", cashier.id, sorted(changes))
    return cashier


# ── Reset requests ──────────────────────────────────────────────────
@router.get("/cashier-reset-requests", response_model=list[ResetRequestRead])
async def list_reset_requests(
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> list[User]:
    """Cashiers waiting for an admin to issue a reset OTP."""
    return await repo.list_reset_requests()


@router.get("/cashier-reset-requests/count", response_model=ResetRequestCount)
async def count_reset_requests(
    repo: UserRepository = Depends(get_user_repo),
    _admin: SessionClaims = Depends(require_admin),
) -> ResetRequestCount:
    return ResetRequestCount(count=await repo.count_reset_requests())


@router.post("/cashiers/{cashier_id}/reset-initiate", response_model=ResetInitiatedResponse)
async def initiate_cashier_reset(
    cashier_id: str,
    service: PasswordResetService = Depends(get_reset_service),
    admin: SessionClaims = Depends(require_admin),
) -> ResetInitiatedResponse:
    """Issue a reset OTP to the cashier's personal email."""
    issued = await service.initiate_cashier_reset(cashier_id)
    logger.info("Admin %s initiated reset for cashier %s", admin.user_id, cashier_id)
    return ResetInitiatedResponse(
        message="Password reset OTP generated and sent to cashier.",
        otp_expires=issued.expires_at,
        delivered=issued.delivered,
    )
