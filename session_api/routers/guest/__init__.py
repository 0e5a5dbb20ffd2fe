"""
Guest routers - /guest/*
Public lookups and the guest side of a dining session.
"""

from .public import router as public_router
from .sessions import router as sessions_router

__all__ = ["public_router", "sessions_router"]
