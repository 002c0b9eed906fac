"""
Achievement Engine — awards badges from declarative threshold criteria.

Criteria (stored as JSON on each Achievement)
---------------------------------------------
  {"type": "books_read",           "threshold": 10, "timeframe": "all_time"}
  {"type": "recommendations_sent", "threshold": 5}

  books_read            user_books with status=finished, windowed on finished_at
  recommendations_sent  book_recommendations authored by the user, windowed on created_at

Any other `type` parses to an UNSUPPORTED rule: never met, reported in the
result and logged, so a typo in the catalogue is visible instead of silently
unreachable.

Timeframes: daily (since midnight), weekly (rolling 7 days), monthly (since
the 1st), yearly (since Jan 1), all_time / missing (no filter).

Idempotency
-----------
Only achievements the user has not earned are evaluated. Each award is
inserted inside a savepoint; the (user_id, achievement_id) unique constraint
is the final guard, and an IntegrityError there means a concurrent pass
already awarded it — treated as a no-op.

Failure policy
--------------
`evaluate_achievements` never raises. Triggers fire after the user's own
action has committed, so a failure here is logged, rolled back and reported
in `EvaluationResult.error`.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookclub.core.clock import as_utc, utcnow
from bookclub.models.achievement import Achievement, AchievementProgress, UserAchievement
from bookclub.models.book import BookRecommendation, ShelfStatus, UserBook

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rule vocabulary
# ---------------------------------------------------------------------------

class CriteriaType(str, enum.Enum):
    BOOKS_READ = "books_read"
    RECOMMENDATIONS_SENT = "recommendations_sent"
    UNSUPPORTED = "unsupported"


class Timeframe(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL_TIME = "all_time"


class ActivityType(str, enum.Enum):
    """What prompted an evaluation pass. Informational; every pass checks every rule."""
    BOOK_FINISHED = "book_finished"
    CLUB_JOINED = "club_joined"
    RECOMMENDATION_SENT = "recommendation_sent"
    RECOMMENDATION_RECEIVED = "recommendation_received"
    REVIEW_WRITTEN = "review_written"
    FRIEND_ADDED = "friend_added"
    MANUAL_CHECK = "manual_check"


class RuleOutcome(str, enum.Enum):
    MET = "met"
    NOT_MET = "not_met"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Criteria:
    type: CriteriaType
    threshold: int
    timeframe: Timeframe
    raw_type: Optional[str] = None

    @property
    def target(self) -> int:
        return self.threshold or 1


@dataclass
class RuleEvaluation:
    achievement_id: int
    outcome: RuleOutcome
    current: int
    target: int


@dataclass
class EvaluationResult:
    """Summary of one evaluation pass for one user."""
    user_id: str
    activity_type: Optional[str]
    awarded: list[str] = field(default_factory=list)          # achievement names
    already_awarded: list[str] = field(default_factory=list)  # lost a concurrent race
    unsupported: list[str] = field(default_factory=list)
    progress_updated: int = 0
    error: Optional[str] = None


@dataclass
class EarnedAchievement:
    achievement: Achievement
    earned_at: datetime
    snapshot: dict[str, Any]


@dataclass
class AchievementInProgress:
    achievement: Achievement
    current_value: int
    target_value: int
    progress_percentage: int


@dataclass
class UserAchievementSummary:
    earned: list[EarnedAchievement]
    in_progress: list[AchievementInProgress]

    @property
    def total_points(self) -> int:
        return sum(e.achievement.points or 0 for e in self.earned)


# ---------------------------------------------------------------------------
# Parsing + pure helpers
# ---------------------------------------------------------------------------

def parse_criteria(raw: Any) -> Criteria:
    """Accepts the stored JSON text or an already-decoded dict."""
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (ValueError, TypeError):
            data = {}
    if not isinstance(data, dict):
        data = {}

    raw_type = data.get("type")
    try:
        kind = CriteriaType(raw_type)
    except ValueError:
        kind = CriteriaType.UNSUPPORTED
    if kind == CriteriaType.UNSUPPORTED:
        raw_type = raw_type if raw_type is not None else "<missing>"

    try:
        threshold = int(data.get("threshold") or 0)
    except (TypeError, ValueError):
        threshold = 0

    try:
        timeframe = Timeframe(data.get("timeframe") or Timeframe.ALL_TIME.value)
    except ValueError:
        timeframe = Timeframe.ALL_TIME

    return Criteria(type=kind, threshold=threshold, timeframe=timeframe, raw_type=raw_type)


def window_start(timeframe: Timeframe, now: datetime) -> Optional[datetime]:
    """
    Lower bound for a timeframe, or None for all_time.

    Calendar windows are in UTC: daily starts at UTC midnight, monthly on the
    1st and yearly on Jan 1 (both at 00:00 UTC). Weekly is the rolling last
    7 days. `now` is expected to be an aware UTC datetime.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == Timeframe.DAILY:
        return midnight
    if timeframe == Timeframe.WEEKLY:
        return now - timedelta(days=7)
    if timeframe == Timeframe.MONTHLY:
        return midnight.replace(day=1)
    if timeframe == Timeframe.YEARLY:
        return midnight.replace(month=1, day=1)
    return None


def progress_percentage(current: int, target: int) -> int:
    """round(current / target * 100), half up. Not clamped: 10/5 -> 200."""
    if target <= 0:
        target = 1
    pct = Decimal(current) * 100 / Decimal(target)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Counters (one per supported rule kind)
# ---------------------------------------------------------------------------

def _count_books_read(db: Session, user_id: str, since: Optional[datetime]) -> int:
    q = db.query(func.count(UserBook.id)).filter(
        UserBook.user_id == user_id,
        UserBook.status == ShelfStatus.finished,
    )
    if since is not None:
        q = q.filter(UserBook.finished_at >= since)
    return q.scalar() or 0


def _count_recommendations_sent(db: Session, user_id: str, since: Optional[datetime]) -> int:
    q = db.query(func.count(BookRecommendation.id)).filter(
        BookRecommendation.from_user_id == user_id,
    )
    if since is not None:
        q = q.filter(BookRecommendation.created_at >= since)
    return q.scalar() or 0


_COUNTERS = {
    CriteriaType.BOOKS_READ: _count_books_read,
    CriteriaType.RECOMMENDATIONS_SENT: _count_recommendations_sent,
}


def current_value(db: Session, user_id: str, criteria: Criteria, now: datetime) -> Optional[int]:
    """Live counter for a rule, or None when the rule kind is unsupported."""
    counter = _COUNTERS.get(criteria.type)
    if counter is None:
        return None
    return counter(db, user_id, window_start(criteria.timeframe, now))


def evaluate_rule(
    db: Session,
    user_id: str,
    achievement: Achievement,
    now: datetime,
) -> RuleEvaluation:
    criteria = parse_criteria(achievement.criteria)
    value = current_value(db, user_id, criteria, now)
    if value is None:
        return RuleEvaluation(achievement.id, RuleOutcome.UNSUPPORTED, 0, criteria.target)
    outcome = RuleOutcome.MET if value >= criteria.threshold else RuleOutcome.NOT_MET
    return RuleEvaluation(achievement.id, outcome, value, criteria.target)


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------

def _unearned(db: Session, user_id: str) -> list[Achievement]:
    earned_ids = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    return (
        db.query(Achievement)
        .filter(Achievement.is_active.is_(True), Achievement.id.not_in(earned_ids))
        .order_by(Achievement.id)
        .all()
    )


def _award(db: Session, user_id: str, achievement: Achievement, now: datetime) -> bool:
    """
    Insert the award row inside a savepoint. Returns False when the unique
    constraint reports that someone else got there first.
    """
    snapshot = {
        "earned_at": now.isoformat(),
        "achievement_name": achievement.name,
        "points_earned": achievement.points,
    }
    try:
        with db.begin_nested():
            db.add(UserAchievement(
                user_id=user_id,
                achievement_id=achievement.id,
                earned_at=now,
                progress_data=json.dumps(snapshot),
            ))
    except IntegrityError:
        logger.info(
            "Achievement %s already awarded to %s by a concurrent pass",
            achievement.name, user_id,
        )
        return False
    return True


def _upsert_progress(
    db: Session,
    user_id: str,
    achievement_id: int,
    current: int,
    target: int,
    now: datetime,
) -> None:
    row = (
        db.query(AchievementProgress)
        .filter(
            AchievementProgress.user_id == user_id,
            AchievementProgress.achievement_id == achievement_id,
        )
        .first()
    )
    if row is None:
        row = AchievementProgress(user_id=user_id, achievement_id=achievement_id)
        db.add(row)
    row.current_value = current
    row.target_value = target
    row.last_updated = now


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def evaluate_achievements(
    db: Session,
    user_id: str,
    activity_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    """
    Award every newly satisfied achievement and refresh progress for the
    rest. Commits its own work. Never raises.
    """
    now = now or utcnow()
    result = EvaluationResult(user_id=user_id, activity_type=activity_type)
    try:
        for achievement in _unearned(db, user_id):
            evaluation = evaluate_rule(db, user_id, achievement, now)

            if evaluation.outcome == RuleOutcome.UNSUPPORTED:
                result.unsupported.append(achievement.name)
                logger.warning(
                    "Achievement %s has unsupported criteria %r; skipped",
                    achievement.name, achievement.criteria,
                )
                continue

            if evaluation.outcome == RuleOutcome.MET:
                if _award(db, user_id, achievement, now):
                    result.awarded.append(achievement.name)
                    logger.info(
                        "Awarded %s (%s pts) to %s after %s",
                        achievement.name, achievement.points, user_id,
                        activity_type or "evaluation",
                    )
                else:
                    result.already_awarded.append(achievement.name)
                continue

            _upsert_progress(
                db, user_id, achievement.id, evaluation.current, evaluation.target, now
            )
            result.progress_updated += 1

        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("Achievement evaluation failed for %s", user_id)
        result.error = str(exc) or exc.__class__.__name__
        result.awarded = []
        result.progress_updated = 0
    return result


def get_user_achievements(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> UserAchievementSummary:
    """
    Earned achievements with their award-time snapshot, plus live progress
    for every active unearned achievement with a supported rule.
    """
    now = now or utcnow()
    earned_rows = (
        db.query(UserAchievement, Achievement)
        .join(Achievement, Achievement.id == UserAchievement.achievement_id)
        .filter(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc(), UserAchievement.id.desc())
        .all()
    )
    earned = []
    for award, achievement in earned_rows:
        try:
            snapshot = json.loads(award.progress_data) if award.progress_data else {}
        except (ValueError, TypeError):
            snapshot = {}
        earned.append(EarnedAchievement(
            achievement=achievement,
            earned_at=as_utc(award.earned_at),
            snapshot=snapshot,
        ))

    in_progress = []
    for achievement in _unearned(db, user_id):
        criteria = parse_criteria(achievement.criteria)
        value = current_value(db, user_id, criteria, now)
        if value is None:
            continue
        in_progress.append(AchievementInProgress(
            achievement=achievement,
            current_value=value,
            target_value=criteria.target,
            progress_percentage=progress_percentage(value, criteria.target),
        ))

    return UserAchievementSummary(earned=earned, in_progress=in_progress)
