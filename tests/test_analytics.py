# tests/test_analytics.py
from datetime import timedelta

import pytest
from sqlalchemy import update

from models.comment import Comment, CommentTargetType, CommentType, Visibility
from schemas.comment_schemas import CommentCreate, ReplyCreate
from services.discussion_analytics_service import (
    _round_half_up,
    discussion_analytics_service,
)
from utils.exceptions import AccessDeniedException, NotFoundException
from utils.time_utils import utc_now


async def comment_on_task(service, db, team, user, **overrides):
    data = {
        "target_type": CommentTargetType.REHAB_TASK,
        "target_id": team.task_a.id,
        "related_patient_id": team.patient_a.id,
        "content": "Progressing well",
    }
    data.update(overrides)
    result = await service.create_comment(db, await team.ctx(user), CommentCreate(**data))
    return result.comment


def test_engagement_score_blends_diversity_volume_and_recency():
    score = discussion_analytics_service.calculate_engagement_score

    assert score(0, 0, 0) == 0
    assert score(10, 3, 5) == 100
    # 2/3 * 30 + 4/10 * 40 + 2/5 * 30 = 20 + 16 + 12
    assert score(4, 2, 2) == 48


def test_engagement_level_thresholds():
    level = discussion_analytics_service.calculate_engagement_level

    assert level(0, 0) == "none"
    assert level(6, 5) == "high"
    assert level(3, 2) == "moderate"
    assert level(12, 0) == "regular"
    assert level(3, 1) == "low"


def test_round_half_up():
    assert _round_half_up(0.25, 1) == 0.3
    assert _round_half_up(2.5) == 3


async def test_discussion_analytics_for_a_task(db, care_team, service):
    root = await comment_on_task(
        service, db, care_team, care_team.patient_a, comment_type=CommentType.QUESTION
    )
    await service.reply_to_comment(
        db,
        await care_team.ctx(care_team.physio_a),
        root.id,
        ReplyCreate(content="Yes", priority="high"),
    )
    await comment_on_task(
        service,
        db,
        care_team,
        care_team.physio_a,
        content="Private plan",
        visibility=Visibility.PRIVATE,
    )

    analytics = await discussion_analytics_service.get_discussion_analytics(
        db,
        await care_team.ctx(care_team.patient_a),
        CommentTargetType.REHAB_TASK,
        care_team.task_a.id,
    )

    assert analytics.total_comments == 2
    assert analytics.total_threads == 1
    assert analytics.active_participants == 2
    assert analytics.unread_count == 1
    assert analytics.priority_distribution == {"normal": 1, "high": 1}
    assert analytics.type_distribution == {"question": 1, "note": 1}
    assert analytics.recent_activity.comments_last_7_days == 2
    assert analytics.recent_activity.average_per_day == 0.3


async def test_old_comments_fall_out_of_recent_activity(db, care_team, service):
    comment = await comment_on_task(service, db, care_team, care_team.physio_a)
    await db.execute(
        update(Comment)
        .where(Comment.id == comment.id)
        .values(created_at=utc_now() - timedelta(days=30))
    )
    await db.commit()

    analytics = await discussion_analytics_service.get_discussion_analytics(
        db,
        await care_team.ctx(care_team.physio_a),
        CommentTargetType.REHAB_TASK,
        care_team.task_a.id,
    )
    assert analytics.total_comments == 1
    assert analytics.recent_activity.comments_last_7_days == 0


async def test_available_filters_list_values_in_use(db, care_team, service):
    await comment_on_task(
        service, db, care_team, care_team.physio_a, comment_type=CommentType.WARNING
    )
    await comment_on_task(service, db, care_team, care_team.physio_a, priority="urgent")

    filters = await discussion_analytics_service.get_available_filters(
        db,
        await care_team.ctx(care_team.physio_a),
        CommentTargetType.REHAB_TASK,
        care_team.task_a.id,
    )
    assert filters.priorities == ["normal", "urgent"]
    assert filters.types == ["note", "warning"]


async def test_user_statistics_for_providers(db, care_team, service):
    first = await comment_on_task(service, db, care_team, care_team.patient_a)
    await comment_on_task(
        service, db, care_team, care_team.patient_a, comment_type=CommentType.QUESTION
    )
    await service.resolve_comment(db, await care_team.ctx(care_team.physio_a), first.id)

    stats = await discussion_analytics_service.get_user_comment_statistics(
        db, await care_team.ctx(care_team.physio_a), care_team.patient_a.id
    )

    assert stats.total_comments == 1
    assert stats.comments_by_type == {"question": 1}
    assert stats.resolved_comments == 1
    assert stats.recent_activity == 1
    assert stats.engagement_level == "low"


async def test_user_statistics_reject_patients_and_unknown_users(db, care_team):
    with pytest.raises(AccessDeniedException):
        await discussion_analytics_service.get_user_comment_statistics(
            db, await care_team.ctx(care_team.patient_a), care_team.patient_a.id
        )
    with pytest.raises(NotFoundException):
        await discussion_analytics_service.get_user_comment_statistics(
            db, await care_team.ctx(care_team.doctor), care_team.task_a.id
        )
