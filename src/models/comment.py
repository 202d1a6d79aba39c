# src/models/comment.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship, validates
from enum import Enum as PyEnum
from db.database import Base, str_enum
from models.user import role_enum
from utils.time_utils import utc_now


class CommentTargetType(str, PyEnum):
    REHAB_TASK = "rehabTask"
    PROGRESS = "progress"
    PATIENT = "patient"
    GENERAL = "general"


class CommentType(str, PyEnum):
    FEEDBACK = "feedback"
    INSTRUCTION = "instruction"
    CONCERN = "concern"
    ENCOURAGEMENT = "encouragement"
    QUESTION = "question"
    OBSERVATION = "observation"
    RECOMMENDATION = "recommendation"
    NOTE = "note"
    WARNING = "warning"
    CELEBRATION = "celebration"
    PAIN_REPORT = "pain_report"
    ISSUE = "issue"


# Replies of these types are closed together with their root
CASCADE_RESOLVE_TYPES = frozenset({CommentType.QUESTION, CommentType.CONCERN})

RESPONSE_REQUIRED_TYPES = frozenset(
    {
        CommentType.QUESTION,
        CommentType.CONCERN,
        CommentType.PAIN_REPORT,
        CommentType.ISSUE,
    }
)


class CommentPriority(str, PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    CommentPriority.LOW: 0,
    CommentPriority.NORMAL: 1,
    CommentPriority.HIGH: 2,
    CommentPriority.URGENT: 3,
}


class Visibility(str, PyEnum):
    PRIVATE = "private"
    PATIENT_VISIBLE = "patient_visible"
    TEAM_VISIBLE = "team_visible"
    ALL_VISIBLE = "all_visible"


class CommentStatus(str, PyEnum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ARCHIVED = "archived"
    FLAGGED = "flagged"


# Statuses counted as part of a live discussion
LIVE_STATUSES = frozenset({CommentStatus.ACTIVE, CommentStatus.RESOLVED})

# Roots listed in a thread view by default; archived roots are tombstones
THREAD_STATUSES = LIVE_STATUSES | {CommentStatus.ARCHIVED}


class ReactionType(str, PyEnum):
    LIKE = "like"
    HELPFUL = "helpful"
    THANKS = "thanks"
    CONCERN = "concern"
    QUESTION = "question"


class ResolutionType(str, PyEnum):
    ANSWERED = "answered"
    ADDRESSED = "addressed"
    ACKNOWLEDGED = "acknowledged"
    ESCALATED = "escalated"
    NO_ACTION_NEEDED = "no_action_needed"


class ModerationStatus(str, PyEnum):
    OPEN = "open"
    CLEARED = "cleared"
    REMOVED = "removed"


def _member_relationship(model_name: str):
    return relationship(
        model_name,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # What the comment annotates
    target_type = Column(
        str_enum(CommentTargetType, "comment_target_type"), nullable=False
    )
    target_id = Column(Uuid, nullable=True)  # None for general discussion
    related_patient_id = Column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    author_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    author_role = Column(role_enum, nullable=False)

    content = Column(Text, nullable=False)
    comment_type = Column(
        str_enum(CommentType, "comment_type"), default=CommentType.NOTE, nullable=False
    )
    priority = Column(
        str_enum(CommentPriority, "comment_priority"),
        default=CommentPriority.NORMAL,
        nullable=False,
    )
    priority_rank = Column(Integer, default=1, nullable=False)

    requires_response = Column(Boolean, default=False, nullable=False)
    response_deadline = Column(DateTime(timezone=True), nullable=True)
    has_provider_response = Column(Boolean, default=False, nullable=False)

    visibility = Column(
        str_enum(Visibility, "comment_visibility"),
        default=Visibility.PATIENT_VISIBLE,
        nullable=False,
    )

    # Threading, single level by convention
    parent_comment_id = Column(
        Uuid, ForeignKey("comments.id"), nullable=True, index=True
    )
    is_reply = Column(Boolean, default=False, nullable=False)
    reply_to_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    reply_count = Column(Integer, default=0, nullable=False)
    last_reply_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), default=utc_now)

    status = Column(
        str_enum(CommentStatus, "comment_status"),
        default=CommentStatus.ACTIVE,
        nullable=False,
    )

    # Resolution record
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_type = Column(String(30), nullable=True)

    # Edit / delete history
    is_edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    edited_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    original_content = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)

    # Keyed member sets, one row per user
    visible_to = _member_relationship("CommentVisibility")
    mentions = _member_relationship("CommentMention")
    reactions = _member_relationship("CommentReaction")
    read_receipts = _member_relationship("CommentRead")
    flags = _member_relationship("CommentFlag")

    @validates("priority")
    def _sync_priority_rank(self, key, value):
        if value is not None:
            self.priority_rank = PRIORITY_RANK[CommentPriority(value)]
        return value

    @validates("parent_comment_id")
    def _sync_is_reply(self, key, value):
        self.is_reply = value is not None
        return value

    @property
    def visible_user_ids(self) -> set:
        return {member.user_id for member in self.visible_to}

    @property
    def reader_ids(self) -> set:
        return {receipt.user_id for receipt in self.read_receipts}

    @property
    def flag_count(self) -> int:
        return len(self.flags)

    def reaction_of(self, user_id):
        for reaction in self.reactions:
            if reaction.user_id == user_id:
                return reaction
        return None


class CommentVisibility(Base):
    __tablename__ = "comment_visibility"

    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True, index=True)
    role = Column(role_enum, nullable=False)


class CommentMention(Base):
    __tablename__ = "comment_mentions"

    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    notified = Column(Boolean, default=False, nullable=False)


class CommentReaction(Base):
    __tablename__ = "comment_reactions"

    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    reaction_type = Column(str_enum(ReactionType, "reaction_type"), nullable=False)
    reacted_at = Column(DateTime(timezone=True), default=utc_now)


class CommentRead(Base):
    __tablename__ = "comment_reads"

    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True, index=True)
    read_at = Column(DateTime(timezone=True), default=utc_now)


class CommentFlag(Base):
    __tablename__ = "comment_flags"

    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    flagger_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    reason = Column(String(255), nullable=True)
    flagged_at = Column(DateTime(timezone=True), default=utc_now)


class ModerationRecord(Base):
    __tablename__ = "moderation_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    comment_id = Column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    flag_count = Column(Integer, nullable=False)
    status = Column(
        str_enum(ModerationStatus, "moderation_status"),
        default=ModerationStatus.OPEN,
        nullable=False,
    )
    opened_at = Column(DateTime(timezone=True), default=utc_now)
    reviewed_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
