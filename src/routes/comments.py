# src/routes/comments.py
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, List, Optional
from uuid import UUID
from core.config import settings
from core.dependencies import get_current_user
from db.database import get_db
from models.comment import (
    CommentPriority,
    CommentStatus,
    CommentTargetType,
    CommentType,
    ResolutionType,
)
from schemas.access_schemas import AccessContext
from schemas.analytics_schemas import DiscussionAnalytics, UserCommentStatistics
from schemas.comment_schemas import (
    BulkReadRequest,
    BulkReadResult,
    CommentCreate,
    CommentDetail,
    CommentPublic,
    CommentResult,
    CommentUpdate,
    DeleteResult,
    FlagCreate,
    FlagResult,
    ReactionCreate,
    ReactionResult,
    ReplyCreate,
    ResolveResult,
    ResponseQueue,
    ResponseQueueOptions,
    SearchOptions,
    SearchResult,
    SearchSort,
    SortOrder,
    ThreadedComments,
    ThreadOptions,
    ThreadSortField,
    UnreadComments,
    UnreadOptions,
    UserComments,
    UserCommentsOptions,
)
from services.comment_service import comment_service
from services.discussion_analytics_service import discussion_analytics_service
from utils.rate_limiter import limiter
from utils.logger import setup_logger

router = APIRouter(prefix="/comments", tags=["comments"])
logger = setup_logger("COMMENT_ROUTES")


@router.post(
    "/",
    response_model=CommentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
    description="Create a comment on a task, progress entry, patient or general thread",
)
@limiter.limit(settings.WRITE_RATE_LIMIT)
async def create_comment(
    request: Request,
    comment_data: CommentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    """Create comment endpoint; notifications go out after the response"""
    return await comment_service.create_comment(
        db, current_user, comment_data, background_tasks
    )


@router.get(
    "/search",
    response_model=SearchResult,
    summary="Search comments",
    description="Full text search over the comments the caller can read",
)
async def search_comments(
    query: Optional[str] = Query(None, description="Search term"),
    target_type: Optional[CommentTargetType] = None,
    comment_type: Optional[CommentType] = None,
    author_id: Optional[UUID] = None,
    related_patient_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sort_by: SearchSort = Query("relevance"),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    options = SearchOptions(
        query=query,
        target_type=target_type,
        comment_type=comment_type,
        author_id=author_id,
        related_patient_id=related_patient_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
    )
    return await comment_service.search_comments(db, current_user, options)


@router.get(
    "/unread",
    response_model=UnreadComments,
    summary="Unread comments",
    description="Active comments by others that the caller has not read yet",
)
async def get_unread_comments(
    target_type: Optional[CommentTargetType] = None,
    priority: Optional[CommentPriority] = None,
    comment_type: Optional[CommentType] = None,
    limit: int = Query(50, ge=1, le=settings.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    options = UnreadOptions(
        target_type=target_type,
        priority=priority,
        comment_type=comment_type,
        limit=limit,
    )
    return await comment_service.get_unread_comments(db, current_user, options)


@router.get(
    "/requiring-response",
    response_model=ResponseQueue,
    summary="Response queue",
    description="Open patient questions and concerns ranked by urgency (providers only)",
)
async def get_comments_requiring_response(
    overdue: bool = False,
    priority: Optional[CommentPriority] = None,
    limit: int = Query(50, ge=1, le=settings.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    options = ResponseQueueOptions(overdue=overdue, priority=priority, limit=limit)
    return await comment_service.get_comments_requiring_response(
        db, current_user, options
    )


@router.post(
    "/bulk-read",
    response_model=BulkReadResult,
    summary="Mark comments as read",
)
async def bulk_mark_as_read(
    payload: BulkReadRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.bulk_mark_as_read(
        db, current_user, payload.comment_ids
    )


@router.get(
    "/users/{user_id}/statistics",
    response_model=UserCommentStatistics,
    summary="Comment statistics for a user",
)
async def get_user_comment_statistics(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await discussion_analytics_service.get_user_comment_statistics(
        db, current_user, user_id
    )


@router.get(
    "/users/{user_id}/comments",
    response_model=UserComments,
    summary="Comments by user",
    description="One author's comments within the caller's scope (providers only)",
)
async def get_comments_by_user(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sort_by: ThreadSortField = Query("created_at"),
    sort_order: SortOrder = Query("desc"),
    comment_status: Optional[CommentStatus] = Query(None, alias="status"),
    comment_type: Optional[CommentType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    options = UserCommentsOptions(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        status=comment_status,
        comment_type=comment_type,
    )
    return await comment_service.get_comments_by_user(
        db, current_user, user_id, options
    )


@router.get(
    "/{target_type}/{target_id}/threads",
    response_model=ThreadedComments,
    summary="Threaded comments",
    description="Root comments on a target with their replies, analytics and filters",
)
async def get_threaded_comments(
    target_type: CommentTargetType,
    target_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sort_by: ThreadSortField = Query("created_at"),
    sort_order: SortOrder = Query("desc"),
    comment_type: Optional[CommentType] = None,
    priority: Optional[CommentPriority] = None,
    comment_status: Optional[CommentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    """Threaded comments endpoint"""
    options = ThreadOptions(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        comment_type=comment_type,
        priority=priority,
        status=comment_status,
    )
    return await comment_service.get_threaded_comments(
        db, current_user, target_type, target_id, options
    )


@router.get(
    "/{target_type}/{target_id}/analytics",
    response_model=DiscussionAnalytics,
    summary="Discussion analytics",
)
async def get_discussion_analytics(
    target_type: CommentTargetType,
    target_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await discussion_analytics_service.get_discussion_analytics(
        db, current_user, target_type, target_id
    )


@router.get(
    "/{comment_id}",
    response_model=CommentDetail,
    summary="Get comment",
    description="Get a comment with reactions and thread context; marks it read",
)
async def get_comment(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.get_comment(db, current_user, comment_id)


@router.put(
    "/{comment_id}",
    response_model=CommentPublic,
    summary="Edit comment",
)
async def update_comment(
    comment_id: UUID,
    comment_data: CommentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.update_comment(
        db, current_user, comment_id, comment_data
    )


@router.delete(
    "/{comment_id}",
    response_model=DeleteResult,
    summary="Delete comment",
    description="Roots with replies become tombstones, everything else is removed",
)
async def delete_comment(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.delete_comment(db, current_user, comment_id)


@router.get(
    "/{comment_id}/replies",
    response_model=List[CommentPublic],
    summary="List replies",
)
async def get_comment_replies(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.get_comment_replies(db, current_user, comment_id)


@router.post(
    "/{comment_id}/replies",
    response_model=CommentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Reply to comment",
)
@limiter.limit(settings.WRITE_RATE_LIMIT)
async def reply_to_comment(
    request: Request,
    comment_id: UUID,
    reply_data: ReplyCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.reply_to_comment(
        db, current_user, comment_id, reply_data, background_tasks
    )


@router.post(
    "/{comment_id}/reactions",
    response_model=ReactionResult,
    summary="React to comment",
    description="One reaction per user; a new reaction replaces the previous one",
)
async def add_reaction(
    comment_id: UUID,
    reaction: ReactionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.add_reaction(
        db, current_user, comment_id, reaction.reaction_type
    )


@router.delete(
    "/{comment_id}/reactions",
    response_model=ReactionResult,
    summary="Remove reaction",
)
async def remove_reaction(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.remove_reaction(db, current_user, comment_id)


@router.post(
    "/{comment_id}/read",
    summary="Mark comment as read",
)
async def mark_as_read(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    marked = await comment_service.mark_as_read(db, current_user, comment_id)
    return {"comment_id": str(comment_id), "marked": marked}


@router.post(
    "/{comment_id}/resolve",
    response_model=ResolveResult,
    summary="Resolve comment",
    description="Resolve a comment; question and concern replies are resolved with it",
)
async def resolve_comment(
    comment_id: UUID,
    background_tasks: BackgroundTasks,
    resolution_type: Optional[ResolutionType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    return await comment_service.resolve_comment(
        db, current_user, comment_id, resolution_type, background_tasks
    )


@router.post(
    "/{comment_id}/flag",
    response_model=FlagResult,
    summary="Flag comment",
)
@limiter.limit(settings.WRITE_RATE_LIMIT)
async def flag_comment(
    request: Request,
    comment_id: UUID,
    flag: FlagCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AccessContext = Depends(get_current_user),
) -> Any:
    logger.info(f"User {current_user.user_id} flagging comment {comment_id}")
    return await comment_service.flag_comment(
        db, current_user, comment_id, flag.reason
    )
