"""Routers package for the chronotask HTTP adapter."""

from .profile import router as profile_router
from .tasks import router as tasks_router

__all__ = ["profile_router", "tasks_router"]
