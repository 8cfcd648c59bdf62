"""prwatch - API module for REST endpoints.

This module provides the FastAPI application that receives GitHub
webhooks and exposes stored reviews.
"""

from .config import Settings, get_settings
from .dependencies import (
    get_rate_limiter,
    get_review_store,
    get_webhook_ingress,
)
from .main import app, create_app

__all__ = [
    "app",
    "create_app",
    "get_rate_limiter",
    "get_review_store",
    "get_webhook_ingress",
    "get_settings",
    "Settings",
]
