"""Main API router."""

from fastapi import APIRouter

from reqtrail.api.endpoints import health

api_router = APIRouter()

api_router.include_router(health.router)
