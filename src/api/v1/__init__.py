"""
API v1 package.

Contains versioned API routes for registration and login, plus the
development routes used with the local backend.
"""

from src.api.v1.dev import router as dev_router
from src.api.v1.routes import router

__all__ = ["dev_router", "router"]
