"""API routes package."""

from fastapi import APIRouter

from aeronotes.api.routes import auth, health, sessions

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(sessions.router, prefix="/auth/sessions", tags=["Sessions"])
