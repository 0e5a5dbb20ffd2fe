"""
Staff routers - /sessions/*, /tables/*
Require a staff JWT; every request is scoped to the caller's restaurant.
"""

from .sessions import router as sessions_router
from .tables import router as tables_router

__all__ = ["sessions_router", "tables_router"]
