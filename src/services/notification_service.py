# src/services/notification_service.py
from typing import Callable, List, Optional, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import AsyncSessionLocal
from models.notification import Notification, NotificationPriority, NotificationType
from models.user import User
from schemas.access_schemas import AccessContext
from schemas.base_schemas import PaginationParams
from schemas.notification_schemas import CommentEvent, CommentEventKind
from services.access_control_service import access_control_service
from services.document_store import DocumentStore
from services.filters import FieldEquals
from services.permissions import Action, ResourceKind
from services.query_filter_service import query_filter_service
from utils.logger import setup_logger
from utils.time_utils import utc_now

logger = setup_logger("NOTIFICATION_SERVICE")


class NotificationDispatcher(Protocol):
    """Receives thread events; delivery and retries are the dispatcher's business"""

    async def notify(self, event: CommentEvent) -> None: ...


# kind -> (notification type, priority, title, message template)
EVENT_TEMPLATES = {
    CommentEventKind.MENTION: (
        NotificationType.COMMENT_MENTION,
        NotificationPriority.HIGH,
        "You were mentioned",
        "{sender} mentioned you in a comment",
    ),
    CommentEventKind.REPLY: (
        NotificationType.COMMENT_REPLY,
        NotificationPriority.NORMAL,
        "New reply",
        "{sender} replied to your comment",
    ),
    CommentEventKind.RESOLUTION: (
        NotificationType.COMMENT_RESOLVED,
        NotificationPriority.NORMAL,
        "Comment resolved",
        "{sender} resolved your comment",
    ),
}


class DatabaseNotificationDispatcher:
    """Stores in-app notifications using a session of its own"""

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def notify(self, event: CommentEvent) -> None:
        notification_type, priority, title, template = EVENT_TEMPLATES[
            CommentEventKind(event.kind)
        ]

        async with self.session_factory() as session:
            try:
                sender = await session.get(User, event.sender_id)
                sender_name = sender.full_name if sender else "Someone"

                session.add(
                    Notification(
                        recipient_id=event.recipient_id,
                        sender_id=event.sender_id,
                        type=notification_type,
                        priority=priority,
                        title=title,
                        message=template.format(sender=sender_name),
                        related_entity_type=event.related_entity_type,
                        related_entity_id=event.comment_id,
                        action_url=f"/comments/{event.comment_id}",
                    )
                )
                await session.commit()
                logger.debug(
                    f"Stored {notification_type.value} for user {event.recipient_id}"
                )
            except SQLAlchemyError:
                await session.rollback()
                raise


class NotificationService:
    async def list_notifications(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        pagination: Optional[PaginationParams] = None,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Notifications the user may read, newest first"""
        pagination = pagination or PaginationParams()
        predicate = query_filter_service.build_filter(ctx, ResourceKind.NOTIFICATION)
        if unread_only:
            predicate = predicate & FieldEquals("is_read", False)

        return await DocumentStore(db).find(
            Notification,
            predicate,
            sort=[("created_at", "desc")],
            skip=pagination.skip,
            limit=pagination.limit,
        )

    async def mark_as_read(
        self, db: AsyncSession, ctx: AccessContext, notification_id: UUID
    ) -> Notification:
        store = DocumentStore(db)
        notification = await store.get_or_raise(
            Notification, notification_id, "Notification not found"
        )
        access_control_service.ensure_allowed(
            ctx, ResourceKind.NOTIFICATION, Action.READ, notification
        )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await store.save(notification)
            await store.commit()
        return notification


notification_service = NotificationService()
