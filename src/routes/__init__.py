# src/routes/__init__.py
from .comments import router as comments_router
from .resources import router as resources_router

__all__ = [
    "comments_router",
    "resources_router",
]
