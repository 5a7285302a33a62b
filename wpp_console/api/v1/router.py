"""Main API router aggregating all v1 routes."""

from fastapi import APIRouter

from wpp_console.api.v1 import chats, debug, sessions

api_router = APIRouter()

# Include all route modules
api_router.include_router(sessions.router)
api_router.include_router(chats.router)
api_router.include_router(debug.router)
