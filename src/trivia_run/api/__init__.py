from __future__ import annotations

from fastapi import APIRouter

from trivia_run.api.routes.health import router as health_router
from trivia_run.api.routes.intents import router as intents_router

# Top-level API router
router = APIRouter()

# Route composition
router.include_router(health_router)
router.include_router(intents_router)
