"""
UI-surface landing routes.

Unlike the API guards, these never answer 401/403: anonymous and wrong-role
callers alike are redirected to the login page.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from retailpos.api.v1.deps import require_page_role
from retailpos.core.roles import RequiredRole
from retailpos.core.security import SessionClaims

router = APIRouter(tags=["pages"], include_in_schema=False)

_PAGE = "<!doctype html><html><head><title>{title}</title></head><body data-user=\"{user}\"></body></html>"


@router.get("/admin", response_class=HTMLResponse)
async def admin_home(
    claims: SessionClaims = Depends(require_page_role(RequiredRole.ADMIN)),
) -> str:
    return _PAGE.format(title="Admin", user=claims.user_id)


@router.get("/cashier", response_class=HTMLResponse)
async def cashier_home(
    claims: SessionClaims = Depends(require_page_role(RequiredRole.CASHIER)),
) -> str:
    return _PAGE.format(title="Cashier", user=claims.user_id)
