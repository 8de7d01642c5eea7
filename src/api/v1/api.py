from fastapi import APIRouter

from .auth import router as auth_router
from .conversations import router as conversations_router
from .generate import router as generate_router
from .health import router as health_router
from .history import router as history_router


# Public API router (health, auth)
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)

# Generation works signed in or out; history requires a user per route
api_router.include_router(generate_router)
api_router.include_router(conversations_router)
api_router.include_router(history_router)
