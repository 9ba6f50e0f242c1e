# src/letterpress/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import newsletters_router

__all__ = ["newsletters_router"]
