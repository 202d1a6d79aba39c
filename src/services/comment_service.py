# src/services/comment_service.py
import asyncio
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from models.comment import (
    CASCADE_RESOLVE_TYPES,
    LIVE_STATUSES,
    RESPONSE_REQUIRED_TYPES,
    THREAD_STATUSES,
    Comment,
    CommentFlag,
    CommentMention,
    CommentPriority,
    CommentRead,
    CommentReaction,
    CommentStatus,
    CommentTargetType,
    CommentType,
    CommentVisibility,
    ModerationRecord,
    ModerationStatus,
    ReactionType,
    ResolutionType,
    Visibility,
)
from models.progress import Progress
from models.rehab_task import RehabTask
from models.user import Role, User
from schemas.access_schemas import AccessContext
from schemas.base_schemas import PaginationInfo
from schemas.comment_schemas import (
    BulkReadResult,
    CommentCreate,
    CommentDetail,
    CommentPublic,
    CommentResult,
    CommentUpdate,
    DeleteResult,
    FlagResult,
    ReactionResult,
    ReplyCreate,
    ResolveResult,
    ResponseQueue,
    ResponseQueueItem,
    ResponseQueueOptions,
    SearchOptions,
    SearchResult,
    ThreadFilters,
    ThreadInfo,
    ThreadOptions,
    ThreadSummary,
    ThreadView,
    ThreadedComments,
    UnreadComments,
    UnreadOptions,
    UserComments,
    UserCommentsOptions,
)
from schemas.notification_schemas import CommentEvent, CommentEventKind
from services.access_control_service import access_control_service
from services.discussion_analytics_service import discussion_analytics_service
from services.document_store import DocumentStore
from services.filters import (
    ContainsMember,
    FieldEquals,
    FieldIn,
    FieldRange,
    MatchAll,
    Not,
    Predicate,
    TextContains,
    all_of,
)
from services.notification_service import (
    DatabaseNotificationDispatcher,
    NotificationDispatcher,
)
from services.permissions import Action, ResourceKind
from services.query_filter_service import query_filter_service
from services.relationship_service import relationship_service
from utils.exceptions import (
    AccessDeniedException,
    ConflictException,
    DuplicateActionException,
    NotFoundException,
    ValidationFailedException,
)
from utils.logger import setup_logger
from utils.sanitizer import sanitize_content
from utils.time_utils import as_utc, utc_now

logger = setup_logger("COMMENT_SERVICE")

# Targets whose access follows another resource kind's read rule
TARGET_KINDS = {
    CommentTargetType.REHAB_TASK: (RehabTask, ResourceKind.REHAB_TASK, "assigned_to_id"),
    CommentTargetType.PROGRESS: (Progress, ResourceKind.PROGRESS, "patient_id"),
    CommentTargetType.PATIENT: (User, ResourceKind.USER, "id"),
}

URGENCY_PRIORITY_SCORES = {
    CommentPriority.URGENT: 100,
    CommentPriority.HIGH: 75,
    CommentPriority.NORMAL: 50,
    CommentPriority.LOW: 25,
}
URGENCY_TYPE_BONUS = {CommentType.PAIN_REPORT: 25, CommentType.CONCERN: 15}

HIGH_PRIORITIES = frozenset({CommentPriority.HIGH, CommentPriority.URGENT})

SEARCH_SORTS = {
    "relevance": [("created_at", "desc")],
    "recent": [("created_at", "desc")],
    "oldest": [("created_at", "asc")],
    "priority": [("priority_rank", "desc"), ("created_at", "desc")],
}


def summarize_reactions(reactions) -> Dict[str, int]:
    summary: Dict[str, int] = {}
    for reaction in reactions:
        key = ReactionType(reaction.reaction_type).value
        summary[key] = summary.get(key, 0) + 1
    return summary


class CommentService:
    """Comment, reply and thread lifecycle"""

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher
        self._deliveries: Set[asyncio.Task] = set()

    # Access helpers

    async def _check_patient_context(
        self, db: AsyncSession, ctx: AccessContext, patient_id: UUID
    ) -> User:
        """
        Patients comment on themselves; providers only on assigned patients.

        Write-side counterpart of Relation.OWN_CONTEXT and
        Relation.ASSIGNED_PATIENTS_CONTEXT, checked before the comment exists.
        Doctors go through the assignment check as well.
        """
        patient = await relationship_service.get_user(db, patient_id)
        if Role(patient.role) is not Role.PATIENT:
            raise ValidationFailedException("Comments must relate to a patient")

        if ctx.is_patient and patient.id != ctx.user_id:
            raise AccessDeniedException("Patients can only comment on their own records")
        if ctx.is_provider and patient.id not in ctx.assigned_patient_ids:
            raise AccessDeniedException("Provider is not assigned to this patient")
        return patient

    async def _check_target_access(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        target_type,
        target_id: Optional[UUID],
        patient_id: Optional[UUID] = None,
    ) -> None:
        """The target must exist and be readable by the viewer"""
        target_type = CommentTargetType(target_type)
        if target_type is CommentTargetType.GENERAL:
            return

        model, kind, patient_field = TARGET_KINDS[target_type]
        if target_id is None:
            raise NotFoundException(f"{model.__name__} not found")
        target = await DocumentStore(db).get_or_raise(
            model, target_id, f"{model.__name__} not found"
        )
        if patient_id is not None and getattr(target, patient_field) != patient_id:
            raise ValidationFailedException(
                "Comment target does not belong to the related patient"
            )
        access_control_service.ensure_allowed(
            ctx, kind, Action.READ, target, "Access denied to the comment target"
        )

    def _readable(self, ctx: AccessContext) -> Predicate:
        return query_filter_service.build_filter(ctx, ResourceKind.COMMENT)

    async def _get_readable_comment(
        self, store: DocumentStore, ctx: AccessContext, comment_id: UUID
    ) -> Comment:
        comment = await store.get_or_raise(Comment, comment_id, "Comment not found")
        access_control_service.ensure_allowed(
            ctx, ResourceKind.COMMENT, Action.READ, comment,
            "Access denied to this comment",
        )
        return comment

    # Derived state

    async def _visibility_members(
        self,
        db: AsyncSession,
        visibility: Visibility,
        patient_id: UUID,
        author: User,
    ) -> List[Tuple[UUID, Role]]:
        """Concrete (user, role) recipients for a visibility mode"""
        visibility = Visibility(visibility)
        if visibility is Visibility.PATIENT_VISIBLE:
            return [(patient_id, Role.PATIENT)]
        if visibility is Visibility.TEAM_VISIBLE:
            providers = await relationship_service.assigned_providers(db, patient_id)
            return [(patient_id, Role.PATIENT)] + [
                (provider.id, Role(provider.role)) for provider in providers
            ]
        if visibility is Visibility.PRIVATE:
            return [(author.id, Role(author.role))]
        # all_visible is decided structurally, not by list
        return []

    def _sync_visible_to(
        self, comment: Comment, members: Sequence[Tuple[UUID, Role]]
    ) -> None:
        """Make comment.visible_to equal ``members`` reusing rows where possible"""
        wanted = dict(members)
        for entry in list(comment.visible_to):
            if entry.user_id not in wanted:
                comment.visible_to.remove(entry)
            else:
                entry.role = wanted.pop(entry.user_id)
        for user_id, role in wanted.items():
            comment.visible_to.append(CommentVisibility(user_id=user_id, role=role))

    async def _update_thread_statistics(
        self, store: DocumentStore, parent_id: UUID
    ) -> None:
        parent = await store.find_one(Comment, parent_id)
        if parent is None:
            return

        live_replies = all_of(
            FieldEquals("parent_comment_id", parent_id),
            FieldIn("status", LIVE_STATUSES),
        )
        latest = await store.find(
            Comment, live_replies, sort=[("created_at", "desc")], limit=1
        )
        parent.reply_count = await store.count(Comment, live_replies)
        parent.last_reply_at = latest[0].created_at if latest else None
        parent.last_activity_at = utc_now()
        await store.save(parent)

    async def _thread_info(self, store: DocumentStore, comment: Comment) -> ThreadInfo:
        if comment.parent_comment_id is None:
            replies = await store.count(
                Comment, FieldEquals("parent_comment_id", comment.id)
            )
            return ThreadInfo(root_id=comment.id, depth=0, reply_count=replies)

        # Replies are single level, so the parent is the root
        siblings = await store.count(
            Comment, FieldEquals("parent_comment_id", comment.parent_comment_id)
        )
        return ThreadInfo(
            root_id=comment.parent_comment_id,
            depth=1,
            sibling_count=max(siblings - 1, 0),
            reply_count=siblings,
        )

    async def _deliver(self, events: List[CommentEvent]) -> None:
        """Hand events to the dispatcher; delivery failures never undo the write"""
        for event in events:
            try:
                await self.dispatcher.notify(event)
            except Exception as e:
                logger.warning(
                    f"Failed to deliver {event.kind} event for comment "
                    f"{event.comment_id} to {event.recipient_id}: {e}"
                )

    def _emit(
        self,
        events: List[CommentEvent],
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        """Schedule delivery after the write; the caller never waits on it"""
        if self.dispatcher is None or not events:
            return

        if background_tasks is not None:
            background_tasks.add_task(self._deliver, events)
            return

        task = asyncio.create_task(self._deliver(events))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def drain(self) -> None:
        """Wait for scheduled deliveries (shutdown and tests)"""
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries))

    # Lifecycle

    async def create_comment(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        data: CommentCreate,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> CommentResult:
        """Create a comment, or a reply when parent_comment_id is set"""
        store = DocumentStore(db)
        author = await relationship_service.get_user(db, ctx.user_id)
        patient = await self._check_patient_context(db, ctx, data.related_patient_id)
        await self._check_target_access(
            db, ctx, data.target_type, data.target_id, patient.id
        )

        parent = None
        if data.parent_comment_id is not None:
            parent = await self._get_readable_comment(
                store, ctx, data.parent_comment_id
            )
            if parent.parent_comment_id is not None:
                raise ValidationFailedException("Replies cannot be replied to")
            if parent.related_patient_id != patient.id:
                raise ValidationFailedException(
                    "Reply must relate to the same patient as its parent"
                )

        content = sanitize_content(data.content)
        if not content:
            raise ValidationFailedException("Comment content is empty")

        visibility = Visibility(data.visibility or Visibility.PATIENT_VISIBLE)
        members = await self._visibility_members(db, visibility, patient.id, author)
        mentioned = await relationship_service.resolve_active_users(db, data.mentions)

        comment = Comment(
            target_type=CommentTargetType(data.target_type),
            target_id=data.target_id,
            related_patient_id=patient.id,
            author_id=author.id,
            author_role=Role(author.role),
            content=content,
            comment_type=CommentType(data.comment_type),
            priority=CommentPriority(data.priority),
            requires_response=data.requires_response,
            response_deadline=data.response_deadline,
            visibility=visibility,
            parent_comment_id=parent.id if parent else None,
            reply_to_id=parent.author_id if parent else None,
            visible_to=[
                CommentVisibility(user_id=user_id, role=role)
                for user_id, role in members
            ],
            mentions=[CommentMention(user_id=user.id) for user in mentioned],
        )
        await store.save(comment)

        if parent is not None:
            if ctx.is_provider and parent.author_id != author.id:
                parent.has_provider_response = True
                await store.save(parent)
            await self._update_thread_statistics(store, parent.id)

        await store.commit()
        logger.info(
            f"{author.role} {author.id} created comment {comment.id} "
            f"on {comment.target_type} {comment.target_id}"
        )

        events = [
            CommentEvent(
                kind=CommentEventKind.MENTION,
                recipient_id=user.id,
                sender_id=author.id,
                comment_id=comment.id,
            )
            for user in mentioned
            if user.id != author.id
        ]
        if parent is not None and parent.author_id != author.id:
            events.append(
                CommentEvent(
                    kind=CommentEventKind.REPLY,
                    recipient_id=parent.author_id,
                    sender_id=author.id,
                    comment_id=comment.id,
                )
            )
        self._emit(events, background_tasks)

        comment = await store.find_one(Comment, comment.id)
        return CommentResult(
            comment=CommentPublic.model_validate(comment),
            thread_info=await self._thread_info(store, comment),
        )

    async def reply_to_comment(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        parent_id: UUID,
        data: ReplyCreate,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> CommentResult:
        """Reply inheriting target, patient and by default visibility from the parent"""
        parent = await DocumentStore(db).get_or_raise(
            Comment, parent_id, "Parent comment not found"
        )
        return await self.create_comment(
            db,
            ctx,
            CommentCreate(
                target_type=parent.target_type,
                target_id=parent.target_id,
                related_patient_id=parent.related_patient_id,
                content=data.content,
                comment_type=data.comment_type,
                priority=data.priority,
                visibility=data.visibility or parent.visibility,
                parent_comment_id=parent.id,
                mentions=data.mentions,
            ),
            background_tasks,
        )

    async def update_comment(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        comment_id: UUID,
        data: CommentUpdate,
    ) -> CommentPublic:
        store = DocumentStore(db)
        comment = await store.get_or_raise(Comment, comment_id, "Comment not found")

        if comment.author_id != ctx.user_id:
            raise AccessDeniedException("Only the comment author can edit this comment")
        if CommentStatus(comment.status) is CommentStatus.ARCHIVED:
            raise ConflictException("Deleted comments cannot be edited")

        updates = data.model_dump(exclude_unset=True, exclude_none=True)

        if "content" in updates:
            content = sanitize_content(updates.pop("content"))
            if not content:
                raise ValidationFailedException("Comment content is empty")
            if content != comment.content:
                if comment.original_content is None:
                    comment.original_content = comment.content
                comment.content = content
                comment.is_edited = True
                comment.edited_at = utc_now()
                comment.edited_by = ctx.user_id

        if "visibility" in updates:
            visibility = Visibility(updates.pop("visibility"))
            author = await relationship_service.get_user(db, comment.author_id)
            members = await self._visibility_members(
                db, visibility, comment.related_patient_id, author
            )
            comment.visibility = visibility
            self._sync_visible_to(comment, members)

        for field, value in updates.items():
            setattr(comment, field, value)

        comment.last_activity_at = utc_now()
        await store.save(comment)
        await store.commit()
        logger.info(f"Comment {comment_id} updated by {ctx.user_id}")

        comment = await store.find_one(Comment, comment_id)
        return CommentPublic.model_validate(comment)

    async def delete_comment(
        self, db: AsyncSession, ctx: AccessContext, comment_id: UUID
    ) -> DeleteResult:
        """Tombstone roots that have replies, remove everything else"""
        store = DocumentStore(db)
        comment = await store.get_or_raise(Comment, comment_id, "Comment not found")
        access_control_service.ensure_allowed(
            ctx, ResourceKind.COMMENT, Action.DELETE, comment,
            "Insufficient permissions to delete this comment",
        )

        if comment.parent_comment_id is not None:
            parent_id = comment.parent_comment_id
            await store.delete_one(Comment, comment_id)
            await self._update_thread_statistics(store, parent_id)
            await store.commit()
            logger.info(f"Reply {comment_id} deleted by {ctx.user_id}")
            return DeleteResult(
                comment_id=comment_id,
                deletion_type="hard_delete",
                thread_impact="reply_removed",
            )

        if CommentStatus(comment.status) is CommentStatus.ARCHIVED:
            raise ConflictException("Comment is already deleted")

        replies = await store.count(Comment, FieldEquals("parent_comment_id", comment_id))
        if replies > 0:
            comment.content = settings.COMMENT_TOMBSTONE
            comment.status = CommentStatus.ARCHIVED
            comment.deleted_at = utc_now()
            comment.deleted_by = ctx.user_id
            await store.save(comment)
            await store.commit()
            logger.info(f"Root comment {comment_id} archived by {ctx.user_id}")
            return DeleteResult(
                comment_id=comment_id,
                deletion_type="soft_delete",
                thread_impact="thread_archived",
            )

        await store.delete_one(Comment, comment_id)
        await store.commit()
        logger.info(f"Comment {comment_id} deleted by {ctx.user_id}")
        return DeleteResult(
            comment_id=comment_id,
            deletion_type="hard_delete",
            thread_impact="comment_removed",
        )

    async def resolve_comment(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        comment_id: UUID,
        resolution_type: Optional[ResolutionType] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> ResolveResult:
        if not ctx.is_provider:
            raise AccessDeniedException("Only healthcare providers can resolve comments")

        store = DocumentStore(db)
        comment = await self._get_readable_comment(store, ctx, comment_id)
        await self._check_target_access(db, ctx, comment.target_type, comment.target_id)

        if CommentStatus(comment.status) is CommentStatus.ARCHIVED:
            raise ConflictException("Deleted comments cannot be resolved")
        if comment.resolved:
            raise ConflictException("Comment is already resolved")

        now = utc_now()
        if resolution_type is None:
            resolution_type = (
                ResolutionType.ANSWERED
                if CommentType(comment.comment_type) is CommentType.QUESTION
                else ResolutionType.ADDRESSED
            )
        comment.resolved = True
        comment.resolved_by_id = ctx.user_id
        comment.resolved_at = now
        comment.resolution_type = ResolutionType(resolution_type).value
        comment.has_provider_response = True
        comment.last_activity_at = now
        if CommentStatus(comment.status) is CommentStatus.ACTIVE:
            comment.status = CommentStatus.RESOLVED
        await store.save(comment)

        cascaded = await store.update_many(
            Comment,
            all_of(
                FieldEquals("parent_comment_id", comment_id),
                FieldIn("comment_type", CASCADE_RESOLVE_TYPES),
                FieldEquals("resolved", False),
            ),
            {
                "resolved": True,
                "resolved_by_id": ctx.user_id,
                "resolved_at": now,
                "resolution_type": "parent_resolved",
            },
        )
        await store.commit()
        logger.info(
            f"Comment {comment_id} resolved by {ctx.user_id}; "
            f"{cascaded} replies resolved with it"
        )

        if comment.author_id != ctx.user_id:
            self._emit(
                [
                    CommentEvent(
                        kind=CommentEventKind.RESOLUTION,
                        recipient_id=comment.author_id,
                        sender_id=ctx.user_id,
                        comment_id=comment.id,
                    )
                ],
                background_tasks,
            )

        comment = await store.find_one(Comment, comment_id)
        return ResolveResult(
            comment=CommentPublic.model_validate(comment), resolved_replies=cascaded
        )

    async def flag_comment(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        comment_id: UUID,
        reason: Optional[str] = None,
    ) -> FlagResult:
        store = DocumentStore(db)
        comment = await self._get_readable_comment(store, ctx, comment_id)

        key = {"comment_id": comment_id, "flagger_id": ctx.user_id}
        already_flagged = await store.find_member(CommentFlag, key) is not None
        if already_flagged or not await store.insert_member_once(
            CommentFlag, key, {"reason": reason, "flagged_at": utc_now()}
        ):
            raise DuplicateActionException("You have already flagged this comment")

        flag_count = await store.count(
            CommentFlag, FieldEquals("comment_id", comment_id)
        )
        moderation_status = "none"
        open_records = await store.find(
            ModerationRecord,
            all_of(
                FieldEquals("comment_id", comment_id),
                FieldEquals("status", ModerationStatus.OPEN),
            ),
        )

        if open_records:
            open_records[0].flag_count = flag_count
            await store.save(open_records[0])
            moderation_status = ModerationStatus.OPEN.value
        elif flag_count >= settings.COMMENT_FLAG_THRESHOLD:
            comment.status = CommentStatus.FLAGGED
            await store.save(comment)
            await store.save(
                ModerationRecord(comment_id=comment_id, flag_count=flag_count)
            )
            moderation_status = ModerationStatus.OPEN.value
            logger.warning(
                f"Comment {comment_id} reached {flag_count} flags and is held "
                f"for moderation"
            )

        await store.commit()
        comment = await store.find_one(Comment, comment_id)
        return FlagResult(
            comment_id=comment_id,
            flag_count=flag_count,
            status=comment.status,
            moderation_status=moderation_status,
        )

    # Reactions and read receipts

    async def add_reaction(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        comment_id: UUID,
        reaction_type: ReactionType,
    ) -> ReactionResult:
        """One reaction per user; a new one replaces the previous"""
        store = DocumentStore(db)
        await self._get_readable_comment(store, ctx, comment_id)

        reaction_type = ReactionType(reaction_type)
        await store.upsert_member(
            CommentReaction,
            {"comment_id": comment_id, "user_id": ctx.user_id},
            {"reaction_type": reaction_type, "reacted_at": utc_now()},
        )
        await store.commit()

        comment = await store.find_one(Comment, comment_id)
        return ReactionResult(
            comment_id=comment_id,
            reaction_summary=summarize_reactions(comment.reactions),
            user_reaction=reaction_type.value,
        )

    async def remove_reaction(
        self, db: AsyncSession, ctx: AccessContext, comment_id: UUID
    ) -> ReactionResult:
        store = DocumentStore(db)
        await self._get_readable_comment(store, ctx, comment_id)

        await store.delete_member(
            CommentReaction, {"comment_id": comment_id, "user_id": ctx.user_id}
        )
        await store.commit()

        comment = await store.find_one(Comment, comment_id)
        return ReactionResult(
            comment_id=comment_id,
            reaction_summary=summarize_reactions(comment.reactions),
            user_reaction=None,
        )

    async def mark_as_read(
        self, db: AsyncSession, ctx: AccessContext, comment_id: UUID
    ) -> bool:
        """Record a read receipt once; True if this call added it"""
        store = DocumentStore(db)
        await self._get_readable_comment(store, ctx, comment_id)

        marked = await store.insert_member_once(
            CommentRead,
            {"comment_id": comment_id, "user_id": ctx.user_id},
            {"read_at": utc_now()},
        )
        await store.commit()
        return marked

    async def bulk_mark_as_read(
        self, db: AsyncSession, ctx: AccessContext, comment_ids: List[UUID]
    ) -> BulkReadResult:
        if not comment_ids:
            raise ValidationFailedException("Comment IDs are required")

        store = DocumentStore(db)
        requested = list(dict.fromkeys(comment_ids))
        accessible = await store.find(
            Comment, all_of(FieldIn("id", requested), self._readable(ctx))
        )
        accessible_ids = {comment.id for comment in accessible}
        inaccessible_ids = [cid for cid in requested if cid not in accessible_ids]

        marked = 0
        now = utc_now()
        for cid in requested:
            if cid in accessible_ids and await store.insert_member_once(
                CommentRead, {"comment_id": cid, "user_id": ctx.user_id}, {"read_at": now}
            ):
                marked += 1
        await store.commit()

        return BulkReadResult(
            total_requested=len(requested),
            marked_as_read=marked,
            already_read=len(accessible_ids) - marked,
            inaccessible=len(inaccessible_ids),
            inaccessible_ids=inaccessible_ids,
        )

    # Queries

    async def _visible_replies(
        self, store: DocumentStore, ctx: AccessContext, parent_id: UUID
    ) -> List[Comment]:
        return await store.find(
            Comment,
            all_of(
                FieldEquals("parent_comment_id", parent_id),
                FieldIn("status", LIVE_STATUSES),
                self._readable(ctx),
            ),
            sort=[("created_at", "asc")],
        )

    def _thread_view(
        self, ctx: AccessContext, root: Comment, replies: List[Comment]
    ) -> ThreadView:
        unread = sum(
            1
            for c in [root] + replies
            if c.author_id != ctx.user_id
            and ctx.user_id not in c.reader_ids
            and CommentStatus(c.status) in LIVE_STATUSES
        )
        participants = {root.author_id} | {reply.author_id for reply in replies}
        last_activity = max(
            (as_utc(reply.created_at) for reply in replies), default=None
        )

        summary = ThreadSummary(
            reply_count=len(replies),
            participant_count=len(participants),
            last_activity=last_activity,
            has_high_priority=any(
                CommentPriority(reply.priority) in HIGH_PRIORITIES for reply in replies
            ),
        )
        return ThreadView(
            **CommentPublic.model_validate(root).model_dump(),
            replies=[CommentPublic.model_validate(reply) for reply in replies],
            unread_count=unread,
            has_unread=unread > 0,
            thread_summary=summary,
        )

    async def get_threaded_comments(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        target_type,
        target_id: Optional[UUID],
        options: Optional[ThreadOptions] = None,
    ) -> ThreadedComments:
        """Root comments on a target, each with its replies oldest first"""
        options = options or ThreadOptions()
        target_type = CommentTargetType(target_type)
        await self._check_target_access(db, ctx, target_type, target_id)

        store = DocumentStore(db)
        statuses = (
            {CommentStatus(options.status)} if options.status else THREAD_STATUSES
        )
        roots = all_of(
            self._readable(ctx),
            FieldEquals("target_type", target_type),
            FieldEquals("target_id", target_id),
            FieldEquals("is_reply", False),
            FieldIn("status", statuses),
            FieldEquals("comment_type", options.comment_type)
            if options.comment_type
            else None,
            FieldEquals("priority", options.priority) if options.priority else None,
        )

        sort = [(options.sort_by, options.sort_order)]
        if options.sort_by != "created_at":
            sort.append(("created_at", options.sort_order))
        skip = (options.page - 1) * options.limit

        root_comments = await store.find(
            Comment, roots, sort=sort, skip=skip, limit=options.limit
        )
        total = await store.count(Comment, roots)

        threads = []
        for root in root_comments:
            replies = await self._visible_replies(store, ctx, root.id)
            threads.append(self._thread_view(ctx, root, replies))

        return ThreadedComments(
            threads=threads,
            pagination=PaginationInfo.build(options.page, options.limit, total),
            analytics=await discussion_analytics_service.get_discussion_analytics(
                db, ctx, target_type, target_id
            ),
            filters=ThreadFilters(
                applied={
                    "comment_type": options.comment_type,
                    "priority": options.priority,
                    "status": options.status,
                },
                available=await discussion_analytics_service.get_available_filters(
                    db, ctx, target_type, target_id
                ),
            ),
        )

    async def get_comment_replies(
        self, db: AsyncSession, ctx: AccessContext, parent_id: UUID
    ) -> List[CommentPublic]:
        store = DocumentStore(db)
        await self._get_readable_comment(store, ctx, parent_id)
        replies = await self._visible_replies(store, ctx, parent_id)
        return [CommentPublic.model_validate(reply) for reply in replies]

    async def get_comment(
        self, db: AsyncSession, ctx: AccessContext, comment_id: UUID
    ) -> CommentDetail:
        """Single comment with reactions and thread context; marks it read"""
        store = DocumentStore(db)
        comment = await self._get_readable_comment(store, ctx, comment_id)

        if ctx.user_id not in comment.reader_ids:
            await store.insert_member_once(
                CommentRead,
                {"comment_id": comment_id, "user_id": ctx.user_id},
                {"read_at": utc_now()},
            )
            await store.commit()
            comment = await store.find_one(Comment, comment_id)

        parent = None
        if comment.parent_comment_id is not None:
            parent_doc = await store.find_one(Comment, comment.parent_comment_id)
            if parent_doc is not None and access_control_service.is_allowed(
                ctx, ResourceKind.COMMENT, Action.READ, parent_doc
            ):
                parent = CommentPublic.model_validate(parent_doc)

        own_reaction = comment.reaction_of(ctx.user_id)
        return CommentDetail(
            comment=CommentPublic.model_validate(comment),
            reaction_summary=summarize_reactions(comment.reactions),
            user_reaction=(
                ReactionType(own_reaction.reaction_type).value if own_reaction else None
            ),
            is_read=True,
            thread_info=await self._thread_info(store, comment),
            parent=parent,
        )

    async def search_comments(
        self, db: AsyncSession, ctx: AccessContext, options: SearchOptions
    ) -> SearchResult:
        store = DocumentStore(db)
        predicate = all_of(
            self._readable(ctx),
            FieldIn("status", LIVE_STATUSES),
            TextContains("content", options.query) if options.query else None,
            FieldEquals("target_type", options.target_type)
            if options.target_type
            else None,
            FieldEquals("comment_type", options.comment_type)
            if options.comment_type
            else None,
            FieldEquals("author_id", options.author_id) if options.author_id else None,
            FieldEquals("related_patient_id", options.related_patient_id)
            if options.related_patient_id
            else None,
            FieldRange("created_at", gte=options.date_from, lt=options.date_to)
            if options.date_from or options.date_to
            else None,
        )

        comments = await store.find(
            Comment,
            predicate,
            sort=SEARCH_SORTS[options.sort_by],
            skip=(options.page - 1) * options.limit,
            limit=options.limit,
        )
        total = await store.count(Comment, predicate)

        return SearchResult(
            comments=[CommentPublic.model_validate(c) for c in comments],
            pagination=PaginationInfo.build(options.page, options.limit, total),
            search_meta={
                "query": options.query,
                "filters": options.model_dump(
                    exclude={"query", "page", "limit", "sort_by"}, exclude_none=True
                ),
                "sort_by": options.sort_by,
            },
        )

    async def get_comments_by_user(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        target_user_id: UUID,
        options: UserCommentsOptions,
    ) -> UserComments:
        """One author's comments within the provider's read scope, with statistics"""
        if not ctx.is_provider:
            raise AccessDeniedException("Only providers can list a user's comments")
        await relationship_service.get_user(db, target_user_id)

        store = DocumentStore(db)
        predicate = all_of(
            self._readable(ctx),
            FieldEquals("author_id", target_user_id),
            FieldEquals("status", options.status) if options.status else None,
            FieldEquals("comment_type", options.comment_type)
            if options.comment_type
            else None,
        )

        comments = await store.find(
            Comment,
            predicate,
            sort=[(options.sort_by, options.sort_order)],
            skip=(options.page - 1) * options.limit,
            limit=options.limit,
        )
        total = await store.count(Comment, predicate)

        return UserComments(
            comments=[CommentPublic.model_validate(c) for c in comments],
            pagination=PaginationInfo.build(options.page, options.limit, total),
            user_statistics=await discussion_analytics_service.get_user_comment_statistics(
                db, ctx, target_user_id
            ),
        )

    async def get_unread_comments(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        options: Optional[UnreadOptions] = None,
    ) -> UnreadComments:
        """Active comments visible to the user that others wrote and they have not read"""
        options = options or UnreadOptions()
        store = DocumentStore(db)
        predicate = all_of(
            self._readable(ctx),
            FieldEquals("status", CommentStatus.ACTIVE),
            Not(FieldEquals("author_id", ctx.user_id)),
            Not(ContainsMember("read_receipts", "user_id", ctx.user_id)),
            FieldEquals("target_type", options.target_type)
            if options.target_type
            else None,
            FieldEquals("priority", options.priority) if options.priority else None,
            FieldEquals("comment_type", options.comment_type)
            if options.comment_type
            else None,
        )

        comments = await store.find(
            Comment, predicate, sort=[("created_at", "desc")], limit=options.limit
        )
        total = await store.count(Comment, predicate)

        public = [CommentPublic.model_validate(c) for c in comments]
        grouped: Dict[str, List[CommentPublic]] = {}
        for item in public:
            grouped.setdefault(CommentTargetType(item.target_type).value, []).append(
                item
            )

        return UnreadComments(
            comments=public,
            grouped_by_target=grouped,
            total_unread=total,
            has_more=total > options.limit,
        )

    def _urgency(self, comment: Comment) -> Tuple[int, bool]:
        hours_old = (utc_now() - as_utc(comment.created_at)).total_seconds() / 3600
        score = URGENCY_PRIORITY_SCORES.get(CommentPriority(comment.priority), 0)
        score += min(hours_old * 2, 50)
        score += URGENCY_TYPE_BONUS.get(CommentType(comment.comment_type), 0)
        return int(score + 0.5), hours_old > settings.RESPONSE_OVERDUE_HOURS

    async def get_comments_requiring_response(
        self,
        db: AsyncSession,
        ctx: AccessContext,
        options: Optional[ResponseQueueOptions] = None,
    ) -> ResponseQueue:
        """Open questions and concerns from patients the provider looks after"""
        if not ctx.is_provider:
            raise AccessDeniedException("User is not a healthcare provider")

        options = options or ResponseQueueOptions()
        store = DocumentStore(db)
        patients = (
            MatchAll()
            if ctx.is_doctor
            else FieldIn("related_patient_id", ctx.assigned_patient_ids)
        )
        base = all_of(
            self._readable(ctx),
            patients,
            FieldEquals("status", CommentStatus.ACTIVE),
            FieldIn("comment_type", RESPONSE_REQUIRED_TYPES),
            Not(FieldEquals("author_id", ctx.user_id)),
            FieldEquals("has_provider_response", False),
            FieldEquals("priority", options.priority) if options.priority else None,
        )
        cutoff = utc_now() - timedelta(hours=settings.RESPONSE_OVERDUE_HOURS)
        overdue = all_of(base, FieldRange("created_at", lt=cutoff))
        predicate = overdue if options.overdue else base

        comments = await store.find(
            Comment,
            predicate,
            sort=[("priority_rank", "desc"), ("created_at", "asc")],
            limit=options.limit,
        )

        items = []
        for comment in comments:
            score, is_overdue = self._urgency(comment)
            items.append(
                ResponseQueueItem(
                    **CommentPublic.model_validate(comment).model_dump(),
                    urgency_score=score,
                    is_overdue=is_overdue,
                )
            )
        items.sort(key=lambda item: item.urgency_score, reverse=True)

        return ResponseQueue(
            comments=items,
            total_requiring_response=await store.count(Comment, predicate),
            overdue_count=await store.count(Comment, overdue),
        )


comment_service = CommentService(DatabaseNotificationDispatcher())
