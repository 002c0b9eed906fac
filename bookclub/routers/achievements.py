"""
Achievements router.

GET  /achievements        — earned badges and live progress for the caller
POST /achievements/check  — run an evaluation pass for the caller now
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookclub.core.auth import AuthenticatedUser, get_current_user
from bookclub.db.base import get_db
from bookclub.routers.serializers import iso
from bookclub.schemas.achievement import (
    AchievementCheckRequest,
    AchievementOut,
    EarnedAchievementOut,
    EvaluationOut,
    InProgressAchievementOut,
    UserAchievementsOut,
)
from bookclub.schemas.common import ERROR_RESPONSES
from bookclub.services.achievement_engine import (
    ActivityType,
    evaluate_achievements,
    get_user_achievements,
)

router = APIRouter(prefix="/achievements", tags=["achievements"], responses=ERROR_RESPONSES)


@router.get(
    "",
    response_model=UserAchievementsOut,
    summary="Your achievements",
)
def list_my_achievements(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    summary = get_user_achievements(db, user.id)
    return UserAchievementsOut(
        total_points=summary.total_points,
        earned=[
            EarnedAchievementOut(
                achievement=AchievementOut.model_validate(e.achievement),
                earned_at=iso(e.earned_at) or "",
                snapshot=e.snapshot,
            )
            for e in summary.earned
        ],
        in_progress=[
            InProgressAchievementOut(
                achievement=AchievementOut.model_validate(p.achievement),
                current_value=p.current_value,
                target_value=p.target_value,
                progress_percentage=p.progress_percentage,
            )
            for p in summary.in_progress
        ],
    )


@router.post(
    "/check",
    response_model=EvaluationOut,
    summary="Check for newly earned achievements",
)
def check_achievements(
    body: Optional[AchievementCheckRequest] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Never fails because of a broken rule: evaluation errors are logged and
    reported in `error` with a 200.
    """
    activity_type = body.activity_type if body and body.activity_type else ActivityType.MANUAL_CHECK
    result = evaluate_achievements(db, user.id, activity_type.value)
    return EvaluationOut(
        awarded=result.awarded,
        already_awarded=result.already_awarded,
        unsupported=result.unsupported,
        progress_updated=result.progress_updated,
        error=result.error,
    )
