"""Routes package initialization.

This module exports the route collection for the application.
"""

from fastapi import APIRouter

from dynalink.api.routes import analytics, health, links, redirect
from dynalink.core.config import settings

# Create root router
api_router = APIRouter()

api_router.include_router(links.router, prefix=settings.API_PREFIX)
api_router.include_router(analytics.router, prefix=settings.API_PREFIX)
api_router.include_router(health.router, prefix=settings.API_PREFIX)

# Redirect routes at the root path (no prefix), registered last so
# short links at /{code} never shadow the API
api_router.include_router(redirect.router)

__all__ = ["api_router"]
