"""
API Routers package.
"""

from .commands import router as commands_router
from .threads import router as threads_router
from .notifications import router as notifications_router

__all__ = [
    "commands_router",
    "threads_router",
    "notifications_router"
]
