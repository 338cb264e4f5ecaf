"""API routers."""

from reqtrail.api.router import api_router

__all__ = ["api_router"]
