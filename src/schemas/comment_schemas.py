# src/schemas/comment_schemas.py
from pydantic import Field, field_validator
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime
from uuid import UUID

from core.config import settings
from models.user import Role
from models.comment import (
    CommentPriority,
    CommentStatus,
    CommentTargetType,
    CommentType,
    ReactionType,
    Visibility,
)
from .analytics_schemas import (
    AvailableFilters,
    DiscussionAnalytics,
    UserCommentStatistics,
)
from .base_schemas import BaseSchema, IDMixin, PaginationInfo, TimestampMixin


class CommentCreate(BaseSchema):
    """Schema for creating a comment or, with parent_comment_id, a reply"""

    target_type: CommentTargetType
    target_id: Optional[UUID] = None
    related_patient_id: UUID
    content: str = Field(..., min_length=1)
    comment_type: CommentType = CommentType.NOTE
    priority: CommentPriority = CommentPriority.NORMAL
    visibility: Visibility = Visibility.PATIENT_VISIBLE
    parent_comment_id: Optional[UUID] = None
    requires_response: bool = False
    response_deadline: Optional[datetime] = None
    mentions: List[UUID] = []

    @field_validator("target_id")
    @classmethod
    def validate_target_id(cls, v, info):
        target_type = info.data.get("target_type")
        if v is None and target_type not in (None, CommentTargetType.GENERAL.value):
            raise ValueError("target_id is required unless the target is general")
        return v


class ReplyCreate(BaseSchema):
    """Reply to an existing comment; target and patient come from the parent"""

    content: str = Field(..., min_length=1)
    comment_type: CommentType = CommentType.NOTE
    priority: CommentPriority = CommentPriority.NORMAL
    visibility: Optional[Visibility] = None
    mentions: List[UUID] = []


class CommentUpdate(BaseSchema):
    content: Optional[str] = Field(None, min_length=1)
    comment_type: Optional[CommentType] = None
    priority: Optional[CommentPriority] = None
    visibility: Optional[Visibility] = None
    requires_response: Optional[bool] = None
    response_deadline: Optional[datetime] = None


class ReactionCreate(BaseSchema):
    reaction_type: ReactionType


class FlagCreate(BaseSchema):
    reason: Optional[str] = Field(None, max_length=255)


class BulkReadRequest(BaseSchema):
    comment_ids: List[UUID] = Field(..., min_length=1)


ThreadSortField = Literal[
    "created_at", "last_activity_at", "priority_rank", "reply_count"
]
SortOrder = Literal["asc", "desc"]
SearchSort = Literal["relevance", "recent", "oldest", "priority"]


class ThreadOptions(BaseSchema):
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort_by: ThreadSortField = "created_at"
    sort_order: SortOrder = "desc"
    comment_type: Optional[CommentType] = None
    priority: Optional[CommentPriority] = None
    # None lists open, resolved and tombstoned threads
    status: Optional[CommentStatus] = None


class SearchOptions(BaseSchema):
    query: Optional[str] = None
    target_type: Optional[CommentTargetType] = None
    comment_type: Optional[CommentType] = None
    author_id: Optional[UUID] = None
    related_patient_id: Optional[UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort_by: SearchSort = "relevance"


class UserCommentsOptions(BaseSchema):
    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    sort_by: ThreadSortField = "created_at"
    sort_order: SortOrder = "desc"
    status: Optional[CommentStatus] = None
    comment_type: Optional[CommentType] = None


class UnreadOptions(BaseSchema):
    limit: int = Field(50, ge=1, le=settings.MAX_PAGE_SIZE)
    target_type: Optional[CommentTargetType] = None
    priority: Optional[CommentPriority] = None
    comment_type: Optional[CommentType] = None


class ResponseQueueOptions(BaseSchema):
    overdue: bool = False
    priority: Optional[CommentPriority] = None
    limit: int = Field(50, ge=1, le=settings.MAX_PAGE_SIZE)


# Response schemas


class VisibilityEntry(BaseSchema):
    user_id: UUID
    role: Role


class MentionEntry(BaseSchema):
    user_id: UUID


class ReactionEntry(BaseSchema):
    user_id: UUID
    reaction_type: ReactionType
    reacted_at: Optional[datetime] = None


class CommentPublic(IDMixin, TimestampMixin):
    target_type: CommentTargetType
    target_id: Optional[UUID] = None
    related_patient_id: UUID
    author_id: UUID
    author_role: Role
    content: str
    comment_type: CommentType
    priority: CommentPriority
    visibility: Visibility
    status: CommentStatus

    parent_comment_id: Optional[UUID] = None
    is_reply: bool = False
    reply_to_id: Optional[UUID] = None
    reply_count: int = 0
    last_reply_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    requires_response: bool = False
    response_deadline: Optional[datetime] = None
    has_provider_response: bool = False

    resolved: bool = False
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    resolution_type: Optional[str] = None

    is_edited: bool = False
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    visible_to: List[VisibilityEntry] = []
    mentions: List[MentionEntry] = []
    reactions: List[ReactionEntry] = []
    flag_count: int = 0


class ThreadInfo(BaseSchema):
    root_id: UUID
    depth: int
    sibling_count: int = 0
    reply_count: int = 0


class CommentResult(BaseSchema):
    comment: CommentPublic
    thread_info: ThreadInfo


class ThreadSummary(BaseSchema):
    reply_count: int
    participant_count: int
    last_activity: Optional[datetime] = None
    has_high_priority: bool = False


class ThreadView(CommentPublic):
    replies: List[CommentPublic] = []
    unread_count: int = 0
    has_unread: bool = False
    thread_summary: ThreadSummary


class CommentDetail(BaseSchema):
    comment: CommentPublic
    reaction_summary: Dict[str, int]
    user_reaction: Optional[str] = None
    is_read: bool = True
    thread_info: ThreadInfo
    parent: Optional[CommentPublic] = None


class ReactionResult(BaseSchema):
    comment_id: UUID
    reaction_summary: Dict[str, int]
    user_reaction: Optional[str] = None


class DeleteResult(BaseSchema):
    comment_id: UUID
    deletion_type: Literal["soft_delete", "hard_delete"]
    thread_impact: Literal["thread_archived", "reply_removed", "comment_removed"]


class ResolveResult(BaseSchema):
    comment: CommentPublic
    resolved_replies: int


class FlagResult(BaseSchema):
    comment_id: UUID
    flag_count: int
    status: CommentStatus
    moderation_status: str


class BulkReadResult(BaseSchema):
    total_requested: int
    marked_as_read: int
    already_read: int
    inaccessible: int
    inaccessible_ids: List[UUID] = []


class UnreadComments(BaseSchema):
    comments: List[CommentPublic]
    grouped_by_target: Dict[str, List[CommentPublic]]
    total_unread: int
    has_more: bool


class UserComments(BaseSchema):
    comments: List[CommentPublic]
    pagination: PaginationInfo
    user_statistics: UserCommentStatistics


class ResponseQueueItem(CommentPublic):
    urgency_score: int
    is_overdue: bool


class ResponseQueue(BaseSchema):
    comments: List[ResponseQueueItem]
    total_requiring_response: int
    overdue_count: int


class SearchResult(BaseSchema):
    comments: List[CommentPublic]
    pagination: PaginationInfo
    search_meta: Dict[str, Any]


class ThreadFilters(BaseSchema):
    applied: Dict[str, Any]
    available: AvailableFilters


class ThreadedComments(BaseSchema):
    threads: List[ThreadView]
    pagination: PaginationInfo
    analytics: DiscussionAnalytics
    filters: ThreadFilters
