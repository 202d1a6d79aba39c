# src/schemas/notification_schemas.py
from enum import Enum
from typing import Optional
from datetime import datetime
from uuid import UUID

from models.notification import NotificationPriority, NotificationType
from .base_schemas import BaseSchema, IDMixin


class CommentEventKind(str, Enum):
    MENTION = "mention"
    REPLY = "reply"
    RESOLUTION = "resolution"


class CommentEvent(BaseSchema):
    """Something happened in a thread that a user should hear about"""

    kind: CommentEventKind
    recipient_id: UUID
    sender_id: UUID
    comment_id: UUID
    related_entity_type: str = "comment"


class NotificationPublic(IDMixin):
    recipient_id: UUID
    sender_id: Optional[UUID] = None
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[UUID] = None
    action_url: Optional[str] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
