# src/models/__init__.py
"""
Models initialization file so every mapper is registered before use
"""

from .user import User, ProviderAssignment, Role
from .rehab_task import RehabTask
from .progress import Progress
from .notification import Notification
from .comment import (
    Comment,
    CommentVisibility,
    CommentMention,
    CommentReaction,
    CommentRead,
    CommentFlag,
    ModerationRecord,
)

from sqlalchemy.orm import configure_mappers

configure_mappers()

__all__ = [
    "User",
    "ProviderAssignment",
    "Role",
    "RehabTask",
    "Progress",
    "Notification",
    "Comment",
    "CommentVisibility",
    "CommentMention",
    "CommentReaction",
    "CommentRead",
    "CommentFlag",
    "ModerationRecord",
]
