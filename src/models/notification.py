# src/models/notification.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    String,
    Text,
    DateTime,
    ForeignKey,
    Uuid,
)
from enum import Enum as PyEnum
from db.database import Base, str_enum
from utils.time_utils import utc_now


class NotificationType(str, PyEnum):
    COMMENT_MENTION = "comment_mention"
    COMMENT_REPLY = "comment_reply"
    COMMENT_RESOLVED = "comment_resolved"
    TASK_ASSIGNED = "task_assigned"
    TASK_REMINDER = "task_reminder"
    SYSTEM = "system"


class NotificationPriority(str, PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    recipient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    sender_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    type = Column(str_enum(NotificationType, "notification_type"), nullable=False)
    priority = Column(str_enum(NotificationPriority, "notification_priority"), default=NotificationPriority.NORMAL)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    # What the notification points at, e.g. ("comment", <id>)
    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Uuid, nullable=True)
    action_url = Column(String(255), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
