"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from tableside.api.routes import requests, restaurants, users, playlists

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(requests.router)
api_router.include_router(restaurants.router)
api_router.include_router(users.router)
api_router.include_router(playlists.router)
