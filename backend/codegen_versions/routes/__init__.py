from __future__ import annotations

from fastapi import APIRouter

from . import health, projects

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(projects.router)

__all__ = ["api_router"]
