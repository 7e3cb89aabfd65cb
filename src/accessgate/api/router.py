"""Main API router that aggregates all route modules."""

from fastapi import APIRouter

from accessgate.api import access, admin, auth, health, verification

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# Entitlement flows are mounted at the API root: /start-verification,
# /verify-callback, /redeem-password, /access-status, ...
api_router.include_router(verification.router, tags=["verification"])
api_router.include_router(access.router, tags=["access"])

# Admin endpoints
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
