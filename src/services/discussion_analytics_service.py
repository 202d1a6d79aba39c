# src/services/discussion_analytics_service.py
import math
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from models.comment import Comment, CommentStatus, LIVE_STATUSES
from schemas.access_schemas import AccessContext
from schemas.analytics_schemas import (
    AvailableFilters,
    DiscussionAnalytics,
    RecentActivity,
    UserCommentStatistics,
)
from services.document_store import DocumentStore
from services.filters import (
    ContainsMember,
    FieldEquals,
    FieldIn,
    FieldRange,
    Not,
    Predicate,
    all_of,
)
from services.permissions import ResourceKind
from services.query_filter_service import query_filter_service
from services.relationship_service import relationship_service
from utils.exceptions import AccessDeniedException
from utils.logger import setup_logger
from utils.time_utils import utc_now

logger = setup_logger("DISCUSSION_ANALYTICS")


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


class DiscussionAnalyticsService:
    """Read-side aggregates, always scoped by the viewer's comment filter"""

    def _target_scope(
        self, ctx: AccessContext, target_type, target_id: Optional[UUID]
    ) -> Predicate:
        return all_of(
            query_filter_service.build_filter(ctx, ResourceKind.COMMENT),
            FieldEquals("target_type", target_type),
            FieldEquals("target_id", target_id),
            FieldIn("status", LIVE_STATUSES),
        )

    def calculate_engagement_score(
        self, total_comments: int, participant_count: int, recent_comments: int
    ) -> int:
        """Blend of participant diversity (30), volume (40) and recency (30)"""
        if total_comments == 0:
            return 0
        diversity = min(participant_count / 3, 1) * 30 if participant_count > 0 else 0
        volume = min(total_comments / 10, 1) * 40
        recency = min(recent_comments / 5, 1) * 30
        return int(_round_half_up(diversity + volume + recency))

    def calculate_engagement_level(self, total_comments: int, recent: int) -> str:
        if total_comments == 0:
            return "none"
        if recent >= 5:
            return "high"
        if recent >= 2:
            return "moderate"
        if total_comments >= 10:
            return "regular"
        return "low"

    async def get_discussion_analytics(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        target_type,
        target_id: Optional[UUID],
    ) -> DiscussionAnalytics:
        store = DocumentStore(db)
        scope = self._target_scope(ctx, target_type, target_id)
        days = settings.RECENT_ACTIVITY_DAYS
        since = utc_now() - timedelta(days=days)

        total = await store.count(Comment, scope)
        threads = await store.count(Comment, all_of(scope, FieldEquals("is_reply", False)))
        participants = await store.distinct(Comment, "author_id", scope)
        unread = await store.count(
            Comment,
            all_of(
                scope,
                Not(FieldEquals("author_id", ctx.user_id)),
                Not(ContainsMember("read_receipts", "user_id", ctx.user_id)),
            ),
        )
        recent = await store.count(
            Comment, all_of(scope, FieldRange("created_at", gte=since))
        )

        return DiscussionAnalytics(
            total_comments=total,
            total_threads=threads,
            active_participants=len(participants),
            participant_ids=participants,
            unread_count=unread,
            priority_distribution=await store.group_count(Comment, "priority", scope),
            type_distribution=await store.group_count(Comment, "comment_type", scope),
            recent_activity=RecentActivity(
                comments_last_7_days=recent,
                average_per_day=_round_half_up(recent / days, 1),
            ),
            engagement_score=self.calculate_engagement_score(
                total, len(participants), recent
            ),
        )

    async def get_available_filters(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        target_type,
        target_id: Optional[UUID],
    ) -> AvailableFilters:
        store = DocumentStore(db)
        scope = self._target_scope(ctx, target_type, target_id)
        return AvailableFilters(
            priorities=sorted(await store.distinct(Comment, "priority", scope)),
            types=sorted(await store.distinct(Comment, "comment_type", scope)),
        )

    async def get_user_comment_statistics(
        self, db: AsyncSession, ctx: AccessContext, target_user_id: UUID
    ) -> UserCommentStatistics:
        """Per-author activity summary for provider oversight"""
        if not ctx.is_provider:
            raise AccessDeniedException("Only providers can view comment statistics")
        await relationship_service.get_user(db, target_user_id)

        store = DocumentStore(db)
        scope = all_of(
            query_filter_service.build_filter(ctx, ResourceKind.COMMENT),
            FieldEquals("author_id", target_user_id),
        )
        active = all_of(scope, FieldEquals("status", CommentStatus.ACTIVE))
        since = utc_now() - timedelta(days=settings.RECENT_ACTIVITY_DAYS)

        total = await store.count(Comment, active)
        recent = await store.count(
            Comment, all_of(active, FieldRange("created_at", gte=since))
        )

        return UserCommentStatistics(
            user_id=target_user_id,
            total_comments=total,
            comments_by_type=await store.group_count(Comment, "comment_type", active),
            comments_by_priority=await store.group_count(Comment, "priority", active),
            recent_activity=recent,
            flagged_comments=await store.count(
                Comment, all_of(scope, FieldEquals("status", CommentStatus.FLAGGED))
            ),
            resolved_comments=await store.count(
                Comment, all_of(scope, FieldEquals("resolved", True))
            ),
            engagement_level=self.calculate_engagement_level(total, recent),
        )


discussion_analytics_service = DiscussionAnalyticsService()
