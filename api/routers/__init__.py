"""API routers for the prwatch application.

This module exports all API routers for inclusion in the main FastAPI app.
"""

from .health import router as health_router
from .reviews import router as reviews_router
from .webhook import router as webhook_router

__all__ = [
    "health_router",
    "reviews_router",
    "webhook_router",
]
