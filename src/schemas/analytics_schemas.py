# src/schemas/analytics_schemas.py
from typing import Dict, List, Literal
from uuid import UUID

from .base_schemas import BaseSchema


class RecentActivity(BaseSchema):
    comments_last_7_days: int
    average_per_day: float


class DiscussionAnalytics(BaseSchema):
    total_comments: int
    total_threads: int
    active_participants: int
    participant_ids: List[UUID] = []
    unread_count: int
    priority_distribution: Dict[str, int]
    type_distribution: Dict[str, int]
    recent_activity: RecentActivity
    engagement_score: int


class AvailableFilters(BaseSchema):
    priorities: List[str]
    types: List[str]


class UserCommentStatistics(BaseSchema):
    user_id: UUID
    total_comments: int
    comments_by_type: Dict[str, int]
    comments_by_priority: Dict[str, int]
    recent_activity: int
    flagged_comments: int
    resolved_comments: int
    engagement_level: Literal["none", "low", "regular", "moderate", "high"]
