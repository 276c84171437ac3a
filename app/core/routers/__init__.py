"""
Routers for the application.

"""

from app.core.routers.admin import router as admin_router
from app.core.routers.auth import router as auth_router
from app.core.routers.sessions import router as sessions_router

__all__ = ["admin_router", "auth_router", "sessions_router"]
