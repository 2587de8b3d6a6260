"""API module."""

from .challenges import router as challenges_router

__all__ = ['challenges_router']
