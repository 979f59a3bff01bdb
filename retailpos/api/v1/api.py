"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from retailpos.api.v1.endpoints import admin, auth, health

api_router = APIRouter()

# Login, refresh, signup, self-service reset
api_router.include_router(auth.router)

# Cashier management and admin-initiated resets
api_router.include_router(admin.router)

# Liveness
api_router.include_router(health.router)
