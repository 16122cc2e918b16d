"""API routes."""

from fastapi import APIRouter

from app.api.routes import auth, chat, contracts, plans

api_router = APIRouter()

# Public routes (no auth required)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# Protected routes (auth required)
api_router.include_router(plans.router, prefix="/plans", tags=["plans"])
api_router.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
api_router.include_router(chat.router, prefix="/contracts", tags=["chat"])
api_router.include_router(chat.messages_router, prefix="/messages", tags=["chat"])
