"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from opengym.api.routes import games, participants, public

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(games.router)
api_router.include_router(participants.router)
api_router.include_router(public.router)
