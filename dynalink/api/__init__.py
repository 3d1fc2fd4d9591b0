"""API package for the dynalink service.

This package contains the API layer components including routes,
request/response schemas, and dependency providers.
"""

from dynalink.api.routes import api_router

__all__ = ["api_router"]
