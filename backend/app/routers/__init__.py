"""ScopeGen Learning - API Routers"""
from .tracking import router as tracking_router
from .suggestions import router as suggestions_router
from .profile import router as profile_router
from .scheduler import router as scheduler_router

__all__ = [
    "tracking_router",
    "suggestions_router",
    "profile_router",
    "scheduler_router",
]
