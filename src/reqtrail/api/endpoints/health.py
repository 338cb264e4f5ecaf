"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    """Basic health check endpoint."""
    app = request.app
    return {
        "status": "healthy",
        "service": app.title,
        "version": app.version,
    }
