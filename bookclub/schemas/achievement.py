"""
Achievement schemas.

GET  /achievements         →                         UserAchievementsOut
POST /achievements/check   → AchievementCheckRequest → EvaluationOut
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from bookclub.services.achievement_engine import ActivityType


class AchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    points: int


class EarnedAchievementOut(BaseModel):
    achievement: AchievementOut
    earned_at: str
    snapshot: dict[str, Any] = Field(
        default_factory=dict,
        description="Taken at award time: earned_at, achievement_name, points_earned.",
    )


class InProgressAchievementOut(BaseModel):
    achievement: AchievementOut
    current_value: int
    target_value: int
    progress_percentage: int = Field(description="Not clamped; can exceed 100.")


class UserAchievementsOut(BaseModel):
    total_points: int
    earned: list[EarnedAchievementOut]
    in_progress: list[InProgressAchievementOut]


class AchievementCheckRequest(BaseModel):
    activity_type: Optional[ActivityType] = Field(
        default=None,
        description="What prompted the check. Every rule is evaluated regardless.",
    )


class EvaluationOut(BaseModel):
    awarded: list[str]
    already_awarded: list[str] = Field(default_factory=list)
    unsupported: list[str] = Field(default_factory=list)
    progress_updated: int
    error: Optional[str] = None
