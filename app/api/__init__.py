from fastapi import APIRouter

from .routes import (
    admin,
    health,
    profile,
    webhooks,
)

api_router = APIRouter()

# Health check
api_router.include_router(health.router, tags=["health"])

# Current user
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])

# Payment provider callbacks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Admin: support tooling
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
